"""
架构检测单元测试
"""

import subprocess
from unittest.mock import patch

import pytest

from intunepkg.config.schema import Architecture
from intunepkg.package.architecture import (
    ArchitectureCountError,
    ArchitectureError,
    ArchitectureInspector,
    ArchitectureMismatchError,
    DetectedArch,
    InvalidAppBundleError,
    parse_file_output,
)

ARM_OUTPUT = "Mach-O 64-bit executable arm64\n"
X86_OUTPUT = "Mach-O 64-bit executable x86_64\n"
UNIVERSAL_OUTPUT = (
    "Mach-O universal binary with 2 architectures: "
    "[x86_64:Mach-O 64-bit executable x86_64] [arm64]\n"
)


def file_runner(outputs):
    """按可执行文件所在 .app 名返回 file 输出"""
    def run(args, **kwargs):
        executable = str(args[-1])
        for marker, output in outputs.items():
            if marker in executable:
                return subprocess.CompletedProcess(args, 0, stdout=output, stderr="")
        return subprocess.CompletedProcess(args, 0, stdout="data\n", stderr="")
    return run


class TestParseFileOutput:
    """file 输出解析测试"""

    def test_variants(self):
        """测试各种切片组合"""
        assert parse_file_output(ARM_OUTPUT) == DetectedArch.ARM64
        assert parse_file_output(X86_OUTPUT) == DetectedArch.X86_64
        assert parse_file_output(UNIVERSAL_OUTPUT) == DetectedArch.UNIVERSAL
        assert parse_file_output("ASCII text") == DetectedArch.UNKNOWN


class TestArchitectureInspector:
    """ArchitectureInspector 测试"""

    def test_detect_uses_main_executable(self, tmp_path, make_app):
        """测试检测主执行文件"""
        app = make_app(tmp_path)

        with patch("intunepkg.package.architecture.run_command",
                   side_effect=file_runner({"Firefox.app": UNIVERSAL_OUTPUT})) as mock_run:
            assert ArchitectureInspector().detect(app) == DetectedArch.UNIVERSAL

        args = [str(a) for a in mock_run.call_args[0][0]]
        assert args[:2] == ["file", "-bL"]
        assert args[2].endswith("Contents/MacOS/firefox")

    def test_detect_missing_executable_key(self, tmp_path, make_app):
        """测试缺少 CFBundleExecutable"""
        app = make_app(tmp_path, executable="")
        with pytest.raises(ArchitectureError):
            ArchitectureInspector().detect(app)

    def test_validate_in_order(self, tmp_path, make_app):
        """测试按 (arm64, x86_64) 顺序校验"""
        arm = make_app(tmp_path / "arm")
        x86 = make_app(tmp_path / "x86")
        outputs = {"/arm/": ARM_OUTPUT, "/x86/": X86_OUTPUT}

        with patch("intunepkg.package.architecture.run_command", side_effect=file_runner(outputs)):
            detected = ArchitectureInspector().validate([arm, x86], [Architecture.ARM64, Architecture.X86_64])

        assert detected == [DetectedArch.ARM64, DetectedArch.X86_64]

    def test_swapped_order_names_offending_file(self, tmp_path, make_app):
        """测试顺序颠倒时报告出错的文件路径"""
        arm = make_app(tmp_path / "arm")
        x86 = make_app(tmp_path / "x86")
        outputs = {"/arm/": ARM_OUTPUT, "/x86/": X86_OUTPUT}

        with patch("intunepkg.package.architecture.run_command", side_effect=file_runner(outputs)):
            with pytest.raises(ArchitectureMismatchError) as exc_info:
                ArchitectureInspector().validate([x86, arm], [Architecture.ARM64, Architecture.X86_64])

        assert exc_info.value.path == x86
        assert str(x86) in str(exc_info.value)
        assert exc_info.value.found == DetectedArch.X86_64

    def test_universal_binary_is_not_single_arch(self, tmp_path, make_app):
        """测试通用二进制不满足单架构期望"""
        app = make_app(tmp_path)
        with patch("intunepkg.package.architecture.run_command",
                   side_effect=file_runner({"Firefox.app": UNIVERSAL_OUTPUT})):
            with pytest.raises(ArchitectureMismatchError):
                ArchitectureInspector().validate([app], [Architecture.ARM64])

    def test_count_mismatch(self, tmp_path, make_app):
        """测试数量不一致"""
        app = make_app(tmp_path)
        with pytest.raises(ArchitectureCountError):
            ArchitectureInspector().validate([app], [Architecture.ARM64, Architecture.X86_64])

    def test_unknown_architecture(self, tmp_path, make_app):
        """测试无法识别的架构"""
        app = make_app(tmp_path)
        with patch("intunepkg.package.architecture.run_command", side_effect=file_runner({})):
            with pytest.raises(InvalidAppBundleError):
                ArchitectureInspector().validate([app], [Architecture.ARM64])
