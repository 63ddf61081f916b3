"""
提交步骤

提交加密描述、轮询处理结果、指向已提交的内容版本、确认新版本可见。
确认可见后放弃补偿：此后的失败不再删除已发布的应用。
"""

from ...graph.client import GraphError
from ...upload.poller import PollFailed, PollSuccess
from ...upload.session import UploadState
from ...utils.logging import error, info, success, LogStage
from ..publish_context import PublishContext, PublishError
from .publish_step import PublishStep


class CommitStep(PublishStep):
    """等待存储侧落盘后提交加密描述"""

    def __init__(self):
        super().__init__("commit", "提交内容文件", LogStage.COMMIT)

    def get_progress_range(self) -> tuple[int, int]:
        return (75, 77)

    def execute(self, context: PublishContext) -> None:
        session = context.session
        settle = context.config.upload.commit_settle_sec
        if settle > 0:
            info(f"等待 {settle:g} 秒后提交", stage=LogStage.COMMIT)
            context.services.sleep(settle)

        session.transition(UploadState.COMMITTING)
        try:
            context.services.graph.commit_file(
                session.app_id, session.app_type, session.content_version_id, session.file_id,
                context.encrypted.info.to_graph(),
            )
        except GraphError as e:
            session.transition(UploadState.COMMITTED_FAILED, str(e))
            raise PublishError(f"提交内容文件失败: {e}") from e


class AwaitCommitStep(PublishStep):
    """轮询 uploadState 直到 commitFileSuccess / commitFileFailed"""

    def __init__(self):
        super().__init__("await_commit", "等待提交完成", LogStage.COMMIT)

    def get_progress_range(self) -> tuple[int, int]:
        return (77, 85)

    def execute(self, context: PublishContext) -> None:
        session = context.session
        graph = context.services.graph

        def fetch_status():
            return graph.get_file_status(
                session.app_id, session.app_type, session.content_version_id, session.file_id
            )

        try:
            outcome = context.services.poller.await_commit(fetch_status)
        except GraphError as e:
            session.transition(UploadState.COMMITTED_FAILED, str(e))
            raise PublishError(f"查询提交状态失败: {e}") from e

        if isinstance(outcome, PollSuccess):
            session.transition(UploadState.COMMITTED_SUCCESS)
            success("内容文件提交成功", stage=LogStage.COMMIT)
            return

        if isinstance(outcome, PollFailed):
            session.transition(UploadState.COMMITTED_FAILED, outcome.reason)
            error(
                f"提交失败: {outcome.error_code or '-'} {outcome.error_description or ''}".rstrip(),
                stage=LogStage.COMMIT,
            )
            raise PublishError(f"内容文件提交失败 ({outcome.error_code or outcome.reason})")

        session.transition(UploadState.TIMED_OUT, "提交超时")
        raise PublishError(f"提交在 {outcome.attempts} 次查询后仍未完成")


class SetCommittedVersionStep(PublishStep):
    """把应用指向已提交的内容版本"""

    def __init__(self):
        super().__init__("set_committed_version", "设置已提交的内容版本", LogStage.COMMIT)

    def get_progress_range(self) -> tuple[int, int]:
        return (85, 86)

    def execute(self, context: PublishContext) -> None:
        session = context.session
        try:
            context.services.graph.set_committed_version(
                session.app_id, session.app_type, session.content_version_id
            )
        except GraphError as e:
            raise PublishError(f"设置内容版本失败: {e}") from e


class AwaitVisibilityStep(PublishStep):
    """确认新版本可按追踪 ID 查到，并保存查询快照供对账使用"""

    def __init__(self):
        super().__init__("await_visibility", "确认新版本可见", LogStage.COMMIT)

    def get_progress_range(self) -> tuple[int, int]:
        return (86, 90)

    def execute(self, context: PublishContext) -> None:
        descriptor = context.descriptor
        graph = context.services.graph
        version = descriptor.version_actual

        def is_visible() -> bool:
            context.remote_records = graph.find_apps_by_tracking_id(descriptor.tracking_id)
            return any(record.version == version for record in context.remote_records)

        try:
            outcome = context.services.poller.await_visibility(is_visible)
        except GraphError as e:
            raise PublishError(f"确认上传结果失败: {e}") from e

        if not isinstance(outcome, PollSuccess):
            raise PublishError(f"{descriptor.display_name} {version} 上传后在 Intune 中不可见")

        context.compensation.release()
        success(f"{descriptor.display_name} {version} 已发布 (应用 ID: {context.app_id})", stage=LogStage.COMMIT)
