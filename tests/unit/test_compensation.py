"""
补偿栈与标签锁单元测试
"""

import pytest
from filelock import FileLock

from intunepkg.cache.store import CacheStore
from intunepkg.pipeline.compensation import CompensationStack
from intunepkg.pipeline.lock import LabelLockTimeout, label_lock


class TestCompensationStack:
    """CompensationStack 测试"""

    def test_runs_in_reverse_order(self):
        """测试逆序执行"""
        calls = []
        stack = CompensationStack()
        stack.push("删除应用", lambda: calls.append("app"))
        stack.push("删除缓存", lambda: calls.append("cache"))

        assert stack.run() == []
        assert calls == ["cache", "app"]
        assert len(stack) == 0

    def test_best_effort(self):
        """测试单个动作失败不影响其余动作"""
        calls = []

        def fail():
            raise RuntimeError("network down")

        stack = CompensationStack()
        stack.push("删除应用", lambda: calls.append("app"))
        stack.push("取消分配", fail)

        assert stack.run() == ["取消分配"]
        assert calls == ["app"]

    def test_release(self):
        """测试放弃补偿后不再执行"""
        calls = []
        stack = CompensationStack()
        stack.push("删除应用", lambda: calls.append("app"))

        stack.release()

        assert stack.run() == []
        assert calls == []


class TestLabelLock:
    """标签锁测试"""

    def test_lock_file_location(self, tmp_path):
        """测试锁文件位于标签缓存目录"""
        cache = CacheStore(tmp_path)

        with label_lock(cache, "firefox", timeout=1) as lock:
            assert lock.is_locked
            assert cache.lock_path("firefox").exists()

        assert not lock.is_locked

    def test_held_lock_times_out(self, tmp_path):
        """测试锁被占用时超时"""
        cache = CacheStore(tmp_path)
        (tmp_path / "firefox").mkdir()
        holder = FileLock(str(cache.lock_path("firefox")))

        with holder.acquire(timeout=1):
            with pytest.raises(LabelLockTimeout) as exc_info:
                with label_lock(cache, "firefox", timeout=0):
                    pass

        assert exc_info.value.label == "firefox"

    def test_released_on_error(self, tmp_path):
        """测试异常时释放锁"""
        cache = CacheStore(tmp_path)

        with pytest.raises(RuntimeError):
            with label_lock(cache, "firefox", timeout=1):
                raise RuntimeError("boom")

        with label_lock(cache, "firefox", timeout=0):
            pass
