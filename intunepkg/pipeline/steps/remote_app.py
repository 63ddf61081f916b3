"""
远端应用步骤

创建应用（登记删除补偿）、打开内容版本、注册内容文件。
"""

from ...graph.client import GraphError
from ...graph.records import AppMetadata, ContentFileRequest
from ...upload.session import UploadSession
from ...utils.logging import debug, info, LogStage
from ..publish_context import PublishContext, PublishError
from .publish_step import PublishStep


class CreateAppStep(PublishStep):
    """创建应用对象"""

    def __init__(self):
        super().__init__("create_app", "创建 Intune 应用", LogStage.UPLOAD)

    def get_progress_range(self) -> tuple[int, int]:
        return (48, 50)

    def execute(self, context: PublishContext) -> None:
        graph = context.services.graph
        metadata = AppMetadata.from_descriptor(context.descriptor, context.artifact_path.name)
        try:
            app_id = graph.create_app(metadata)
        except GraphError as e:
            raise PublishError(f"创建应用失败: {e}") from e

        context.app_id = app_id
        context.compensation.push(f"删除应用 {app_id}", lambda: graph.delete_app(app_id))


class OpenContentVersionStep(PublishStep):
    """打开内容版本，创建上传会话"""

    def __init__(self):
        super().__init__("open_content_version", "打开内容版本", LogStage.UPLOAD)

    def get_progress_range(self) -> tuple[int, int]:
        return (50, 51)

    def execute(self, context: PublishContext) -> None:
        app_type = context.descriptor.deployment_kind.graph_app_type
        try:
            version_id = context.services.graph.open_content_version(context.app_id, app_type)
        except GraphError as e:
            raise PublishError(f"打开内容版本失败: {e}") from e

        context.session = UploadSession(app_id=context.app_id, app_type=app_type, content_version_id=version_id)
        debug(f"内容版本: {version_id}", stage=LogStage.UPLOAD)


class RegisterFileStep(PublishStep):
    """注册内容文件（明文与密文大小）"""

    def __init__(self):
        super().__init__("register_file", "注册内容文件", LogStage.UPLOAD)

    def get_progress_range(self) -> tuple[int, int]:
        return (51, 52)

    def execute(self, context: PublishContext) -> None:
        session = context.session
        encrypted = context.encrypted
        request = ContentFileRequest(
            name=context.artifact_path.name,
            size=encrypted.plaintext_size,
            size_encrypted=encrypted.encrypted_size,
        )
        try:
            status = context.services.graph.register_file(
                session.app_id, session.app_type, session.content_version_id, request
            )
        except GraphError as e:
            raise PublishError(f"注册内容文件失败: {e}") from e

        session.file_id = status.id
        info(f"已注册内容文件 {request.name}", stage=LogStage.UPLOAD)
