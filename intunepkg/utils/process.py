"""
外部命令执行

统一封装 subprocess 调用（unzip、ditto、hdiutil、spctl、pkgbuild 等）。
"""

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .logging import debug

CommandArg = Union[str, Path]


class CommandError(Exception):
    """外部命令执行失败"""

    def __init__(self, args: Sequence[CommandArg], returncode: int, output: str = ""):
        self.command = [str(a) for a in args]
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"命令执行失败 (exit {returncode}): {' '.join(self.command)}"
            + (f"\n{output.strip()}" if output.strip() else "")
        )


def run_command(
    args: Sequence[CommandArg],
    *,
    check: bool = True,
    merge_stderr: bool = False,
    timeout: Optional[float] = None,
    cwd: Optional[CommandArg] = None,
) -> subprocess.CompletedProcess:
    """执行外部命令

    Args:
        args: 命令及参数
        check: 非零退出码时是否抛出 CommandError
        merge_stderr: 是否将 stderr 合并到 stdout
        timeout: 超时时间（秒）
        cwd: 工作目录

    Returns:
        CompletedProcess: stdout/stderr 均为文本，无法解码的字节替换为 U+FFFD

    Raises:
        CommandError: check=True 且退出码非零，或命令不存在
    """
    argv: List[str] = [str(a) for a in args]
    debug(f"执行命令: {' '.join(argv)}")

    try:
        result = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            cwd=str(cwd) if cwd else None,
        )
    except FileNotFoundError as e:
        raise CommandError(argv, 127, str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv, -1, f"超时 ({timeout}s)") from e

    if check and result.returncode != 0:
        output = (result.stdout or "") + (result.stderr or "")
        raise CommandError(argv, result.returncode, output)

    return result
