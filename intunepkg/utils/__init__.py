"""通用工具模块"""

from .logging import LogStage, OutputLevel, configure_logging
from .paths import (
    copy_item,
    ensure_directory,
    format_size,
    move_item,
    remove_path,
    safe_path_join,
)
from .process import CommandError, run_command

__all__ = [
    "LogStage",
    "OutputLevel",
    "configure_logging",
    "copy_item",
    "ensure_directory",
    "format_size",
    "move_item",
    "remove_path",
    "safe_path_join",
    "CommandError",
    "run_command",
]
