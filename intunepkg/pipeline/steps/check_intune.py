"""
远端版本检查步骤

期望版本已发布时直接成功结束（幂等）；打包后实际版本与期望不同时再查一次。
"""

from ...graph.client import GraphError
from ...utils.logging import info, success, LogStage
from ..publish_context import PublishContext, PublishError
from .publish_step import PublishStep


def _version_published(context: PublishContext, version: str) -> bool:
    descriptor = context.descriptor
    try:
        records = context.services.graph.find_apps_by_tracking_id(descriptor.tracking_id)
    except GraphError as e:
        raise PublishError(f"查询 Intune 失败: {e}") from e
    context.remote_records = records
    return any(record.version == version for record in records)


class CheckIntuneVersionStep(PublishStep):
    """检查期望版本是否已在 Intune 中"""

    def __init__(self):
        super().__init__("check_intune", "检查 Intune 中的版本", LogStage.CHECK)

    def get_progress_range(self) -> tuple[int, int]:
        return (0, 5)

    def execute(self, context: PublishContext) -> None:
        version = context.descriptor.version_expected
        if not version:
            info("未提供期望版本，跳过远端检查", stage=LogStage.CHECK)
            return

        context.remote_checked = True
        if _version_published(context, version):
            success(f"{context.descriptor.display_name} {version} 已在 Intune 中，无需处理", stage=LogStage.CHECK)
            context.finish(f"{version} 已发布")


class RecheckIntuneVersionStep(PublishStep):
    """实际版本不同于期望版本（或未做过远端检查）时复查"""

    skip_on_cache_hit = True

    def __init__(self):
        super().__init__("recheck_intune", "按实际版本复查 Intune", LogStage.CHECK)

    def get_progress_range(self) -> tuple[int, int]:
        return (40, 42)

    def execute(self, context: PublishContext) -> None:
        descriptor = context.descriptor
        actual = descriptor.version_actual
        if context.remote_checked and actual == descriptor.version_expected:
            return

        info(f"实际版本 {actual}，复查 Intune (文件名: {descriptor.final_filename(actual)})", stage=LogStage.CHECK)
        context.remote_checked = True
        if _version_published(context, actual):
            success(f"{descriptor.display_name} {actual} 已在 Intune 中，无需上传", stage=LogStage.CHECK)
            context.finish(f"{actual} 已发布")
