"""
传输步骤

等待存储地址就绪，然后分块上传封包。
"""

from ...graph.client import GraphError
from ...upload.poller import PollSuccess
from ...upload.session import UploadState
from ...upload.uploader import UploadError
from ...utils.logging import debug, LogStage
from ..publish_context import PublishContext, PublishError
from .publish_step import PublishStep


class AwaitStorageURIStep(PublishStep):
    """轮询 azureStorageUri"""

    def __init__(self):
        super().__init__("await_storage_uri", "等待存储地址", LogStage.UPLOAD)

    def get_progress_range(self) -> tuple[int, int]:
        return (52, 55)

    def execute(self, context: PublishContext) -> None:
        session = context.session
        graph = context.services.graph

        def fetch_uri():
            return graph.get_file_status(
                session.app_id, session.app_type, session.content_version_id, session.file_id
            ).azure_storage_uri

        try:
            outcome = context.services.poller.await_storage_uri(fetch_uri)
        except GraphError as e:
            session.transition(UploadState.UPLOAD_FAILED, str(e))
            raise PublishError(f"查询文件状态失败: {e}") from e

        if not isinstance(outcome, PollSuccess):
            session.transition(UploadState.TIMED_OUT, "存储地址未就绪")
            raise PublishError(f"存储地址在 {outcome.attempts} 次查询后仍未就绪")

        session.storage_uri = outcome.value
        debug("存储地址已就绪", stage=LogStage.UPLOAD)


class UploadChunksStep(PublishStep):
    """分块上传并提交块清单"""

    def __init__(self):
        super().__init__("upload_chunks", "分块上传", LogStage.UPLOAD)

    def get_progress_range(self) -> tuple[int, int]:
        return (55, 75)

    def execute(self, context: PublishContext) -> None:
        session = context.session
        session.transition(UploadState.UPLOADING)
        try:
            session.block_ids = context.services.uploader.upload(
                session.storage_uri, context.encrypted.envelope
            )
        except UploadError as e:
            session.transition(UploadState.UPLOAD_FAILED, str(e))
            raise PublishError(f"上传失败: {e}") from e
