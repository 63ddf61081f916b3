"""
缓存检查步骤
"""

from ...utils.logging import info, LogStage
from ..publish_context import PublishContext
from .publish_step import PublishStep


class CheckCacheStep(PublishStep):
    """缓存命中时信任期望的 bundle id 与版本，跳过下载与打包"""

    def __init__(self):
        super().__init__("check_cache", "检查本地缓存", LogStage.CACHE)

    def get_progress_range(self) -> tuple[int, int]:
        return (5, 8)

    def execute(self, context: PublishContext) -> None:
        descriptor = context.descriptor
        entry = context.services.cache.lookup(descriptor)
        if entry is None:
            info("缓存未命中", stage=LogStage.CACHE)
            return

        descriptor.bundle_id_actual = descriptor.bundle_id_expected
        descriptor.version_actual = descriptor.version_expected
        descriptor.local_path = str(entry.path)
        context.artifact_path = entry.path
        context.from_cache = True
        info(f"缓存命中: {entry.path}", stage=LogStage.CACHE)
