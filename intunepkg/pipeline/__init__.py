"""发布管道模块

状态机、补偿栈、标签锁与远端版本对账。
"""

from .compensation import CompensationAction, CompensationStack
from .lock import LabelLockTimeout, label_lock
from .publish_context import (
    FatalPublishError,
    PublishContext,
    PublishError,
    PublishResult,
    PublishServices,
)
from .publish_pipeline import PublishPipeline, build_services
from .reconciler import ReconcileResult, Reconciler, plan_deletions

__all__ = [
    "CompensationAction",
    "CompensationStack",
    "LabelLockTimeout",
    "label_lock",
    "FatalPublishError",
    "PublishContext",
    "PublishError",
    "PublishResult",
    "PublishServices",
    "PublishPipeline",
    "build_services",
    "ReconcileResult",
    "Reconciler",
    "plan_deletions",
]
