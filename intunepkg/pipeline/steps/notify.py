"""
成功通知步骤
"""

from ...notify import PublishReport
from ...utils.logging import LogStage
from ..publish_context import PublishContext
from .publish_step import PublishStep


def build_report(context: PublishContext, success: bool, message: str = "") -> PublishReport:
    descriptor = context.descriptor
    return PublishReport(
        label=descriptor.label,
        display_name=descriptor.display_name,
        version=descriptor.effective_version(),
        success=success,
        message=message,
        app_id=context.app_id,
        warnings=list(context.warnings),
    )


class NotifyStep(PublishStep):
    """发送发布成功通知"""

    def __init__(self):
        super().__init__("notify", "发送通知", LogStage.NOTIFY)

    def get_progress_range(self) -> tuple[int, int]:
        return (98, 100)

    def execute(self, context: PublishContext) -> None:
        context.services.notifier.notify(build_report(context, success=True, message="已上传到 Intune"))
