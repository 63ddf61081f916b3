"""
日志工具 - 统一输出门面

封装 Rich Console，为流水线各阶段提供带时间戳和阶段标记的输出接口。
"""

import atexit
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from rich.console import Console


class OutputLevel:
    """输出级别常量"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


_LEVEL_ORDER = {
    OutputLevel.DEBUG: 0,
    OutputLevel.INFO: 1,
    OutputLevel.SUCCESS: 1,
    OutputLevel.WARNING: 2,
    OutputLevel.ERROR: 3,
}

_LEVEL_STYLES = {
    OutputLevel.DEBUG: "dim",
    OutputLevel.INFO: "default",
    OutputLevel.SUCCESS: "green",
    OutputLevel.WARNING: "yellow",
    OutputLevel.ERROR: "red bold",
}


class LogStage:
    """流水线阶段标记"""
    INIT = "INIT"
    CHECK = "CHECK"
    CACHE = "CACHE"
    DOWNLOAD = "DOWNLOAD"
    EXTRACT = "EXTRACT"
    VERIFY = "VERIFY"
    RESOLVE = "RESOLVE"
    PACKAGE = "PACKAGE"
    ENCRYPT = "ENCRYPT"
    UPLOAD = "UPLOAD"
    COMMIT = "COMMIT"
    ASSIGN = "ASSIGN"
    RECONCILE = "RECONCILE"
    NOTIFY = "NOTIFY"
    CLEANUP = "CLEANUP"
    DONE = "DONE"

    ERROR = "ERROR"
    WARNING = "WARNING"


class OutputFacade:
    """输出门面

    所有输出都带时间戳，stdout 走彩色 Console，错误走 stderr。
    设置日志文件后同时追加写入文件（带日期）。
    """

    def __init__(self, stream: Any = None, error_stream: Any = None):
        self._lock = threading.RLock()
        self._level = OutputLevel.INFO
        self._file_handle = None  # type: Optional[Any]
        self._date_format = "%Y-%m-%d %H:%M:%S"
        self._time_format = "%H:%M:%S"
        self._console = Console(
            file=stream or sys.stdout,
            markup=True,
            emoji=False,
            highlight=False,
            log_time=False,
            log_path=False,
        )
        self._error_console = Console(
            file=error_stream or sys.stderr,
            markup=True,
            emoji=False,
            highlight=False,
        )

    def _timestamp(self, include_date: bool = False) -> str:
        fmt = self._date_format if include_date else self._time_format
        return datetime.now().strftime(fmt)

    def _should_output(self, level: str) -> bool:
        return _LEVEL_ORDER.get(level, 1) >= _LEVEL_ORDER.get(self._level, 1)

    def _format_plain(self, message: str, level: str, stage: Optional[str]) -> str:
        timestamp = self._timestamp(include_date=True)
        if stage:
            return f"[{timestamp}] [{level}] [{stage}] {message}"
        return f"[{timestamp}] [{level}] {message}"

    def _emit(self, message: str, level: str, stage: Optional[str] = None) -> None:
        if not self._should_output(level):
            return

        with self._lock:
            timestamp = self._timestamp()
            stage_part = f" [cyan]{stage}[/cyan]" if stage else ""
            console = self._error_console if level == OutputLevel.ERROR else self._console
            # 消息本身可能含方括号（路径、列表），不做 markup 解析
            console.print(
                f"[dim]{timestamp}[/dim] [bold]{level}[/bold]{stage_part} ",
                style=_LEVEL_STYLES.get(level, "default"),
                end="",
            )
            console.print(message, style=_LEVEL_STYLES.get(level, "default"), markup=False)
            self._write_to_file(message, level, stage)

    def _write_to_file(self, message: str, level: str, stage: Optional[str]) -> None:
        if not self._file_handle:
            return
        try:
            self._file_handle.write(self._format_plain(message, level, stage) + "\n")
            self._file_handle.flush()
        except OSError:
            pass  # 日志文件写入失败不影响流水线

    def set_level(self, level: str) -> None:
        """设置输出级别"""
        with self._lock:
            if level in _LEVEL_ORDER:
                self._level = level

    def set_log_file(self, file_path: Union[str, Path]) -> None:
        """设置日志文件（追加模式）"""
        with self._lock:
            self.close()
            log_path = Path(file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = open(log_path, "a", encoding="utf-8")

    def debug(self, message: str, stage: Optional[str] = None) -> None:
        self._emit(message, OutputLevel.DEBUG, stage)

    def info(self, message: str, stage: Optional[str] = None) -> None:
        self._emit(message, OutputLevel.INFO, stage)

    def success(self, message: str, stage: Optional[str] = None) -> None:
        self._emit(message, OutputLevel.SUCCESS, stage)

    def warning(self, message: str, stage: Optional[str] = None) -> None:
        self._emit(message, OutputLevel.WARNING, stage)

    def error(self, message: str, stage: Optional[str] = None) -> None:
        self._emit(message, OutputLevel.ERROR, stage)

    def close(self) -> None:
        """关闭日志文件"""
        with self._lock:
            if self._file_handle:
                try:
                    self._file_handle.close()
                except OSError:
                    pass
                self._file_handle = None


_output_facade: Optional[OutputFacade] = None


def get_output_facade() -> OutputFacade:
    """获取全局输出门面实例"""
    global _output_facade
    if _output_facade is None:
        _output_facade = OutputFacade()
    return _output_facade


def debug(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().debug(message, stage)


def info(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().info(message, stage)


def success(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().success(message, stage)


def warning(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().warning(message, stage)


def error(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().error(message, stage)


def set_log_level(level: str) -> None:
    get_output_facade().set_level(level)


def set_log_file(file_path: Union[str, Path]) -> None:
    get_output_facade().set_log_file(file_path)


def close_logger() -> None:
    """关闭日志系统"""
    global _output_facade
    if _output_facade:
        _output_facade.close()
        _output_facade = None


def configure_logging(level: str = OutputLevel.INFO, log_file: Optional[Union[str, Path]] = None) -> None:
    """配置日志系统"""
    set_log_level(level)
    if log_file:
        set_log_file(log_file)


atexit.register(close_logger)
