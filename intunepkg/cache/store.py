"""
缓存存储模块

缓存布局：
    <cache_root>/<label>/<version>/<artifact>
    <cache_root>/<label>/tmp/<run-uuid>/      运行中的下载与解包目录

缓存路径由 (label, version, deployment kind, architecture) 唯一确定。
"""

import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..config.schema import Architecture, DeploymentDescriptor, DeploymentKind
from ..utils.logging import debug, info, warning, LogStage
from ..utils.paths import ensure_directory, move_item, remove_path, safe_path_join
from ..utils.versions import sort_versions_desc

TMP_DIR_NAME = "tmp"
LOCK_FILE_NAME = ".lock"


@dataclass(frozen=True)
class CacheEntry:
    """缓存项"""
    label: str
    version: str
    kind: DeploymentKind
    architecture: Architecture
    path: Path


class CacheStore:
    """缓存存储"""

    def __init__(self, cache_root: Union[str, Path], verify_owner: bool = False):
        self.cache_root = Path(cache_root)
        self.verify_owner = verify_owner

    def label_dir(self, label: str) -> Path:
        return safe_path_join(self.cache_root, label)

    def lock_path(self, label: str) -> Path:
        return self.label_dir(label) / LOCK_FILE_NAME

    def entry_path(self, label: str, version: str, filename: str) -> Path:
        return safe_path_join(self.cache_root, label, version, filename)

    def entry_for(self, descriptor: DeploymentDescriptor, version: Optional[str] = None) -> Optional[CacheEntry]:
        """根据描述计算缓存项（不检查是否存在），信息不全时返回 None"""
        version = descriptor.version_expected if version is None else version
        filename = descriptor.final_filename(version)
        if not descriptor.label or not version or not filename:
            return None
        return CacheEntry(
            label=descriptor.label,
            version=version,
            kind=descriptor.deployment_kind,
            architecture=descriptor.architecture,
            path=self.entry_path(descriptor.label, version, filename),
        )

    def lookup(self, descriptor: DeploymentDescriptor, version: Optional[str] = None) -> Optional[CacheEntry]:
        """查找已缓存的产物"""
        entry = self.entry_for(descriptor, version)
        if entry is None:
            debug("缓存键不完整，跳过缓存检查", stage=LogStage.CACHE)
            return None

        if not entry.path.is_file():
            return None

        if self.verify_owner and hasattr(os, "getuid"):
            owner = entry.path.stat().st_uid
            if owner != os.getuid():
                warning(f"缓存文件属主异常 (uid={owner})，删除: {entry.path}", stage=LogStage.CACHE)
                remove_path(entry.path)
                return None

        return entry

    def store(self, descriptor: DeploymentDescriptor, artifact: Union[str, Path],
              version: Optional[str] = None) -> CacheEntry:
        """把产物移动到其缓存路径"""
        entry = self.entry_for(descriptor, version)
        if entry is None:
            raise ValueError(f"无法为 {descriptor.label} 计算缓存路径（版本为空）")

        artifact = Path(artifact)
        if artifact.resolve() != entry.path.resolve():
            move_item(artifact, entry.path)
        info(f"产物已缓存: {entry.path}", stage=LogStage.CACHE)
        return entry

    def run_dir(self, label: str) -> Path:
        """为本次运行创建唯一的临时目录"""
        return ensure_directory(self.label_dir(label) / TMP_DIR_NAME / uuid.uuid4().hex)

    def cleanup_tmp(self, label: str) -> None:
        """删除标签的临时目录"""
        tmp_dir = self.label_dir(label) / TMP_DIR_NAME
        try:
            if remove_path(tmp_dir):
                debug(f"已清理临时目录: {tmp_dir}", stage=LogStage.CLEANUP)
        except OSError as e:
            warning(f"清理临时目录失败 {tmp_dir}: {e}", stage=LogStage.CLEANUP)

    def labels(self) -> List[str]:
        """缓存中的标签目录名"""
        if not self.cache_root.is_dir():
            return []
        return sorted(p.name for p in self.cache_root.iterdir() if p.is_dir() and not p.name.startswith("."))

    def versions(self, label: str) -> List[str]:
        """标签下的版本目录，按数值降序"""
        label_dir = self.label_dir(label)
        if not label_dir.is_dir():
            return []
        names = [
            p.name for p in label_dir.iterdir()
            if p.is_dir() and p.name != TMP_DIR_NAME and not p.name.startswith(".")
        ]
        return sort_versions_desc(names)

    def remove_orphans(self, managed_labels: Iterable[str]) -> List[str]:
        """删除没有对应受管标签的缓存目录

        Returns:
            List[str]: 被删除的标签目录名
        """
        keep = set(managed_labels)
        removed = []
        for label in self.labels():
            if label in keep:
                continue
            try:
                remove_path(self.cache_root / label)
                removed.append(label)
                info(f"删除孤立缓存: {label}", stage=LogStage.CLEANUP)
            except OSError as e:
                warning(f"删除孤立缓存失败 {label}: {e}", stage=LogStage.CLEANUP)
        return removed

    def trim_versions(self, keep: int) -> Dict[str, List[str]]:
        """每个标签只保留数值最高的 keep 个版本

        Returns:
            Dict[str, List[str]]: 标签 -> 被删除的版本
        """
        if keep < 1:
            raise ValueError("keep 必须 >= 1")

        trimmed: Dict[str, List[str]] = {}
        for label in self.labels():
            excess = self.versions(label)[keep:]
            for version in excess:
                try:
                    remove_path(self.label_dir(label) / version)
                    trimmed.setdefault(label, []).append(version)
                    info(f"删除旧版本缓存: {label}/{version}", stage=LogStage.CLEANUP)
                except OSError as e:
                    warning(f"删除旧版本缓存失败 {label}/{version}: {e}", stage=LogStage.CLEANUP)
        return trimmed

