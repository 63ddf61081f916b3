"""
应用架构检测模块

通过 file -bL 检查应用主执行文件的切片，判断 arm64 / x86_64 / universal。
"""

from enum import Enum
from pathlib import Path
from typing import List, Sequence, Union

from ..config.schema import Architecture
from ..utils.logging import info, LogStage
from ..utils.process import CommandError, run_command
from .version import read_app_info


class DetectedArch(str, Enum):
    """检测到的架构（包含 unknown）"""
    ARM64 = "arm64"
    X86_64 = "x86_64"
    UNIVERSAL = "universal"
    UNKNOWN = "unknown"


class ArchitectureError(Exception):
    """架构分析错误"""
    pass


class ArchitectureMismatchError(ArchitectureError):
    """实际架构与期望不符"""

    def __init__(self, path: Path, expected: Architecture, found: DetectedArch):
        self.path = path
        self.expected = expected
        self.found = found
        super().__init__(f"架构不匹配 {path}: 期望 {expected.value}, 实际 {found.value}")


class ArchitectureCountError(ArchitectureError):
    """待校验的应用数与期望架构数不一致"""
    pass


class InvalidAppBundleError(ArchitectureError):
    """无法识别应用包的架构"""
    pass


def parse_file_output(output: str) -> DetectedArch:
    """解析 file 命令输出"""
    has_arm = "arm64" in output
    has_x86 = "x86_64" in output
    if has_arm and has_x86:
        return DetectedArch.UNIVERSAL
    if has_arm:
        return DetectedArch.ARM64
    if has_x86:
        return DetectedArch.X86_64
    return DetectedArch.UNKNOWN


class ArchitectureInspector:
    """应用架构检测器"""

    def detect(self, app_path: Union[str, Path]) -> DetectedArch:
        """检测 .app 主执行文件架构

        Raises:
            ArchitectureError: Info.plist 缺失或 file 命令失败
        """
        app_path = Path(app_path)
        try:
            bundle = read_app_info(app_path)
        except (OSError, ValueError) as e:
            raise ArchitectureError(f"无法读取 {app_path.name} 的 Info.plist: {e}") from e

        if not bundle.executable:
            raise ArchitectureError(f"{app_path.name} 缺少 CFBundleExecutable")

        executable = app_path / "Contents" / "MacOS" / bundle.executable
        try:
            result = run_command(["file", "-bL", executable])
        except CommandError as e:
            raise ArchitectureError(f"分析 {executable} 失败: {e}") from e

        return parse_file_output(result.stdout or "")

    def validate(self, app_paths: Sequence[Union[str, Path]], expected: Sequence[Architecture]) -> List[DetectedArch]:
        """按位置逐一校验应用架构

        Raises:
            ArchitectureCountError: 数量不一致
            InvalidAppBundleError: 架构未知
            ArchitectureMismatchError: 架构不符（错误信息包含文件路径）
        """
        if len(app_paths) != len(expected):
            raise ArchitectureCountError(
                f"应用数量 ({len(app_paths)}) 与期望架构数量 ({len(expected)}) 不一致"
            )

        detected: List[DetectedArch] = []
        for path, want in zip(app_paths, expected):
            path = Path(path)
            found = self.detect(path)
            if found == DetectedArch.UNKNOWN:
                raise InvalidAppBundleError(f"无法识别应用架构: {path}")
            if found.value != want.value:
                raise ArchitectureMismatchError(path, want, found)
            info(f"  {path.name}: {found.value}", stage=LogStage.VERIFY)
            detected.append(found)

        return detected
