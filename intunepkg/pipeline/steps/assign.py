"""
分类与分组分配步骤

失败只记录警告并写入通知，不回滚已发布的应用。
"""

from ...graph.client import GraphError
from ...utils.logging import info, warning, LogStage
from ..publish_context import PublishContext
from .publish_step import PublishStep


class AssignStep(PublishStep):
    """添加分类与分组分配"""

    def __init__(self):
        super().__init__("assign", "分配分类与分组", LogStage.ASSIGN)

    def get_progress_range(self) -> tuple[int, int]:
        return (90, 93)

    def execute(self, context: PublishContext) -> None:
        descriptor = context.descriptor
        graph = context.services.graph

        for category in descriptor.categories:
            name = category.display_name or category.id
            try:
                graph.add_category(context.app_id, category.id)
                info(f"已添加分类: {name}", stage=LogStage.ASSIGN)
            except GraphError as e:
                message = f"添加分类 {name} 失败: {e}"
                warning(message, stage=LogStage.ASSIGN)
                context.add_warning(message)

        if not descriptor.group_assignments:
            return

        try:
            graph.assign_groups(
                context.app_id,
                descriptor.deployment_kind.graph_app_type,
                descriptor.group_assignments,
            )
            info(f"已分配 {len(descriptor.group_assignments)} 个分组", stage=LogStage.ASSIGN)
        except GraphError as e:
            message = f"分组分配失败: {e}"
            warning(message, stage=LogStage.ASSIGN)
            context.add_warning(message)
