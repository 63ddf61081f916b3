"""
提交轮询模块

有界轮询：固定间隔、固定次数、明确的终态，返回类型化结果而不是散落的 sleep。
sleep 可注入，测试中用假时钟替换。
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from ..utils.logging import debug

T = TypeVar("T")


@dataclass(frozen=True)
class PollSuccess(Generic[T]):
    """到达成功终态"""
    value: T
    attempts: int


@dataclass(frozen=True)
class PollFailed:
    """到达失败终态"""
    reason: str
    attempts: int
    error_code: Optional[str] = None
    error_description: Optional[str] = None


@dataclass(frozen=True)
class PollTimedOut:
    """次数耗尽仍未到达终态"""
    attempts: int
    last_state: Optional[str] = None


PollOutcome = Union[PollSuccess, PollFailed, PollTimedOut]


@dataclass(frozen=True)
class Pending:
    """探测结果：尚未到达终态"""
    state: Optional[str] = None


# probe 返回 PollSuccess / PollFailed 表示终态，返回 Pending 或 None 表示继续
Probe = Callable[[int], Union[PollSuccess, PollFailed, Pending, None]]


def poll(
    probe: Probe,
    *,
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], Any] = time.sleep,
    sleep_first: bool = False,
    label: str = "poll",
) -> PollOutcome:
    """执行有界轮询

    Args:
        probe: 探测函数，参数为当前尝试序号（从 1 开始）
        interval: 两次探测之间的间隔（秒）
        max_attempts: 最大探测次数
        sleep: 等待函数
        sleep_first: 首次探测前是否先等待
        label: 日志标识

    Returns:
        PollSuccess / PollFailed / PollTimedOut
    """
    if max_attempts < 1:
        raise ValueError("max_attempts 必须 >= 1")

    last_state: Optional[str] = None
    for attempt in range(1, max_attempts + 1):
        if sleep_first or attempt > 1:
            sleep(interval)

        result = probe(attempt)
        if isinstance(result, (PollSuccess, PollFailed)):
            return result

        if isinstance(result, Pending):
            last_state = result.state
        debug(f"{label}: 第 {attempt}/{max_attempts} 次未完成 (状态: {last_state})")

    return PollTimedOut(attempts=max_attempts, last_state=last_state)


class CommitPoller:
    """Intune 上传相关的三个轮询，参数来自配置"""

    def __init__(self, upload_config, sleep: Callable[[float], Any] = time.sleep):
        self.config = upload_config
        self.sleep = sleep

    def await_storage_uri(self, fetch_uri: Callable[[], Optional[str]]) -> PollOutcome:
        """等待文件的 azureStorageUri 就绪（先等待再查询）"""
        def probe(attempt: int):
            uri = fetch_uri()
            return PollSuccess(uri, attempt) if uri else Pending("no-uri")

        return poll(
            probe,
            interval=self.config.storage_uri_poll_interval_sec,
            max_attempts=self.config.storage_uri_poll_attempts,
            sleep=self.sleep,
            sleep_first=True,
            label="storage-uri",
        )

    def await_commit(self, fetch_status: Callable[[], Any]) -> PollOutcome:
        """等待 uploadState 到达 commitFileSuccess / commitFileFailed

        fetch_status 返回带 upload_state、error_code、error_description 属性的对象。
        """
        def probe(attempt: int):
            status = fetch_status()
            state = status.upload_state
            if state == "commitFileSuccess":
                return PollSuccess(status, attempt)
            if state == "commitFileFailed":
                return PollFailed(
                    reason="commitFileFailed",
                    attempts=attempt,
                    error_code=getattr(status, "error_code", None),
                    error_description=getattr(status, "error_description", None),
                )
            return Pending(state)

        return poll(
            probe,
            interval=self.config.commit_poll_interval_sec,
            max_attempts=self.config.commit_poll_attempts,
            sleep=self.sleep,
            sleep_first=True,
            label="commit",
        )

    def await_visibility(self, is_visible: Callable[[], bool]) -> PollOutcome:
        """等待新版本在按追踪 ID 的查询中可见"""
        def probe(attempt: int):
            return PollSuccess(True, attempt) if is_visible() else Pending("not-visible")

        return poll(
            probe,
            interval=self.config.visibility_poll_interval_sec,
            max_attempts=self.config.visibility_poll_attempts,
            sleep=self.sleep,
            sleep_first=False,
            label="visibility",
        )
