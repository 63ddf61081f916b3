"""
远端版本对账

对同一追踪 ID 的所有远端条目：
1. 取消版本不同于本次上传版本的已分配条目的分配（不删除）；
2. 按从旧到新的顺序删除超出保留数量的条目，已分配的条目一律跳过。

分配状态以查询快照为准：本轮刚取消分配的条目本轮不会被删除。
本次上传的条目在快照之后才被分配，始终视为已分配，既不取消分配也不删除。
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..graph.client import GraphClient
from ..graph.records import VersionRecord
from ..utils.logging import info, LogStage
from ..utils.versions import version_key


@dataclass
class ReconcileResult:
    """对账结果"""
    unassigned: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    total: int = 0

    @property
    def remaining(self) -> int:
        return self.total - len(self.deleted)


def plan_deletions(records: List[VersionRecord], keep: int,
                   protected: Iterable[str] = ()) -> List[VersionRecord]:
    """计算应删除的条目：最旧的 max(0, total - keep) 个中未分配且不受保护的"""
    protected = set(protected)
    ordered = sorted(records, key=lambda r: version_key(r.version))
    delete_count = max(0, len(ordered) - keep)
    return [r for r in ordered[:delete_count] if not r.is_assigned and r.id not in protected]


class Reconciler:
    """远端版本对账器"""

    def __init__(self, graph: GraphClient):
        self.graph = graph

    def reconcile(self, records: List[VersionRecord], current_version: str, keep: int,
                  current_app_id: Optional[str] = None) -> ReconcileResult:
        """执行对账

        Args:
            records: 按追踪 ID 查询到的快照（包含本次上传的条目）
            current_version: 本次上传的版本
            keep: 保留数量
            current_app_id: 本次上传创建的应用 ID

        Raises:
            GraphError: 取消分配或删除失败
        """
        result = ReconcileResult(total=len(records))
        protected = {current_app_id} if current_app_id else set()

        for record in records:
            if record.id in protected:
                continue
            if record.is_assigned and record.version != current_version:
                info(f"取消旧版本分配: {record.display_name} ({record.version})", stage=LogStage.RECONCILE)
                self.graph.remove_all_assignments(record.id)
                result.unassigned.append(record.id)

        for record in plan_deletions(records, keep, protected):
            info(f"删除旧版本: {record.display_name} ({record.version})", stage=LogStage.RECONCILE)
            self.graph.delete_app(record.id)
            result.deleted.append(record.id)

        return result
