"""
补偿动作栈

每个修改远端状态的步骤登记一个补偿动作；失败时按登记的逆序执行。
补偿是尽力而为的：单个动作失败只记录日志，继续执行其余动作。
"""

from dataclasses import dataclass
from typing import Any, Callable, List

from ..utils.logging import info, warning, LogStage


@dataclass
class CompensationAction:
    """补偿动作"""
    description: str
    action: Callable[[], Any]


class CompensationStack:
    """补偿动作栈"""

    def __init__(self):
        self._actions: List[CompensationAction] = []

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, description: str, action: Callable[[], Any]) -> None:
        self._actions.append(CompensationAction(description, action))

    def release(self) -> None:
        """发布已确认，放弃全部补偿"""
        self._actions.clear()

    def run(self) -> List[str]:
        """逆序执行全部补偿

        Returns:
            List[str]: 执行失败的动作描述
        """
        failures = []
        while self._actions:
            item = self._actions.pop()
            info(f"补偿: {item.description}", stage=LogStage.CLEANUP)
            try:
                item.action()
            except Exception as e:
                warning(f"补偿失败 ({item.description}): {e}", stage=LogStage.CLEANUP)
                failures.append(item.description)
        return failures
