"""
标签锁

同一标签的运行互斥：在 <cache_root>/<label>/.lock 上持有文件锁。
"""

from contextlib import contextmanager
from typing import Iterator

from filelock import FileLock, Timeout

from ..cache.store import CacheStore
from ..utils.logging import debug
from ..utils.paths import ensure_directory


class LabelLockTimeout(Exception):
    """获取标签锁超时"""

    def __init__(self, label: str, timeout: float):
        self.label = label
        self.timeout = timeout
        super().__init__(f"标签 {label} 正在被其他运行处理（等待 {timeout} 秒后超时）")


@contextmanager
def label_lock(cache: CacheStore, label: str, timeout: float) -> Iterator[FileLock]:
    """持有标签锁

    Raises:
        LabelLockTimeout: 超时未获得锁
    """
    ensure_directory(cache.label_dir(label))
    lock = FileLock(str(cache.lock_path(label)))
    try:
        lock.acquire(timeout=timeout)
    except Timeout as e:
        raise LabelLockTimeout(label, timeout) from e

    debug(f"已获得标签锁: {label}")
    try:
        yield lock
    finally:
        lock.release()
