"""
发布步骤基类模块

定义发布步骤的抽象接口。
"""

from abc import ABC, abstractmethod

from ..publish_context import PublishContext


class PublishStep(ABC):
    """发布步骤抽象基类"""

    # 为 True 时缓存命中后跳过（下载、打包、复查）
    skip_on_cache_hit = False

    def __init__(self, name: str, description: str, stage: str):
        self.name = name
        self.description = description
        self.stage = stage

    def should_run(self, context: PublishContext) -> bool:
        return not (self.skip_on_cache_hit and context.from_cache)

    @abstractmethod
    def execute(self, context: PublishContext) -> None:
        """执行发布步骤"""
        pass

    @abstractmethod
    def get_progress_range(self) -> tuple[int, int]:
        """获取此步骤的进度范围 (start_percent, end_percent)"""
        pass
