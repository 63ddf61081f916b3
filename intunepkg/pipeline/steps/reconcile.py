"""
旧版本对账步骤
"""

from ...graph.client import GraphError
from ...utils.logging import info, warning, LogStage
from ..publish_context import PublishContext
from ..reconciler import Reconciler
from .publish_step import PublishStep


class ReconcileStep(PublishStep):
    """取消旧版本分配并删除超出保留数量的旧版本"""

    def __init__(self):
        super().__init__("reconcile", "清理旧版本", LogStage.RECONCILE)

    def get_progress_range(self) -> tuple[int, int]:
        return (93, 97)

    def execute(self, context: PublishContext) -> None:
        keep = context.config.retention.versions_to_keep
        reconciler = Reconciler(context.services.graph)
        try:
            result = reconciler.reconcile(
                context.remote_records, context.descriptor.version_actual, keep, current_app_id=context.app_id
            )
        except GraphError as e:
            message = f"清理旧版本失败: {e}"
            warning(message, stage=LogStage.RECONCILE)
            context.add_warning(message)
            return

        context.remaining_versions = result.remaining
        info(
            f"对账完成: 取消分配 {len(result.unassigned)} 个，删除 {len(result.deleted)} 个，剩余 {result.remaining} 个",
            stage=LogStage.RECONCILE,
        )
