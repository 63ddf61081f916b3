"""
清理步骤（总是执行）
"""

from ...utils.logging import LogStage
from ..publish_context import PublishContext
from .publish_step import PublishStep


class CleanupStep(PublishStep):
    """删除本标签的临时目录"""

    def __init__(self):
        super().__init__("cleanup", "清理临时文件", LogStage.CLEANUP)

    def get_progress_range(self) -> tuple[int, int]:
        return (100, 100)

    def execute(self, context: PublishContext) -> None:
        context.services.cache.cleanup_tmp(context.descriptor.label)
