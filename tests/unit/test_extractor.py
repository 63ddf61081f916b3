"""
归档解包单元测试

外部工具（unzip、ditto、tar、hdiutil）通过替换 run_command 模拟。
"""

import plistlib
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from intunepkg.config.schema import DownloadType
from intunepkg.package.extractor import (
    ArchiveExtractor,
    ExtractionError,
    PayloadNotFoundError,
    find_files,
)
from intunepkg.utils.process import CommandError


class FakeTools:
    """模拟 macOS 命令行工具"""

    def __init__(self, mount_point: Path, extracted=None, license_agreement=False):
        self.mount_point = mount_point
        self.extracted = extracted or {}
        self.license_agreement = license_agreement
        self.calls = []

    def __call__(self, args, **kwargs):
        argv = [str(a) for a in args]
        self.calls.append(argv)
        stdout = ""

        if argv[0] in ("unzip", "ditto", "tar"):
            target = Path(argv[-1])
            for relative, content in self.extracted.items():
                path = target / relative
                path.parent.mkdir(parents=True, exist_ok=True)
                if relative.endswith(".app"):
                    path.mkdir(exist_ok=True)
                else:
                    path.write_bytes(content)
        elif argv[:2] == ["hdiutil", "imageinfo"]:
            stdout = plistlib.dumps(
                {"Properties": {"Software License Agreement": self.license_agreement}}
            ).decode("utf-8")
        elif argv[:2] == ["hdiutil", "convert"]:
            Path(argv[argv.index("-o") + 1]).write_bytes(b"converted")
        elif argv[:2] == ["hdiutil", "attach"]:
            stdout = plistlib.dumps({
                "system-entities": [
                    {"dev-entry": "/dev/disk4"},
                    {"dev-entry": "/dev/disk4s1", "mount-point": str(self.mount_point)},
                ]
            }).decode("utf-8")

        return subprocess.CompletedProcess(args, 0, stdout=stdout, stderr="")

    def commands(self):
        return [" ".join(call[:2]) for call in self.calls]


class TestFindFiles:
    """find_files 测试"""

    def test_shortest_path_first(self, tmp_path):
        """测试最短路径优先、大小写不敏感、跳过隐藏项"""
        (tmp_path / "deep" / "nested").mkdir(parents=True)
        (tmp_path / "deep" / "nested" / "Inner.pkg").write_bytes(b"")
        (tmp_path / "Top.PKG").write_bytes(b"")
        (tmp_path / ".hidden.pkg").write_bytes(b"")

        found = find_files(tmp_path, "pkg")

        assert found == [tmp_path / "Top.PKG", tmp_path / "deep" / "nested" / "Inner.pkg"]

    def test_app_bundles_not_descended(self, tmp_path, make_app):
        """测试 .app 作为目录匹配且不深入其内部"""
        app = make_app(tmp_path)
        (app / "Contents" / "Helpers").mkdir()
        (app / "Contents" / "Helpers" / "Helper.app").mkdir()
        (tmp_path / "fake.app").write_bytes(b"")

        assert find_files(tmp_path, "app") == [app]

    def test_missing_folder(self, tmp_path):
        """测试目录不存在"""
        assert find_files(tmp_path / "missing", "pkg") == []


class TestArchiveExtractor:
    """ArchiveExtractor 测试"""

    def test_plain_pkg(self, tmp_path):
        """测试 .pkg 下载原样返回"""
        pkg = tmp_path / "Tool.pkg"
        assert ArchiveExtractor().locate_payload(pkg, DownloadType.PKG) == pkg

    def test_pkg_in_zip(self, tmp_path):
        """测试 zip 中的 .pkg 使用 unzip"""
        download = tmp_path / "tool.zip"
        tools = FakeTools(tmp_path / "mnt", extracted={"Tool/Tool.pkg": b"pkg"})

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            payload = ArchiveExtractor().locate_payload(download, DownloadType.PKG_IN_ZIP)

        assert payload == tmp_path / "Tool" / "Tool.pkg"
        assert tools.calls[0][0] == "unzip"

    def test_app_in_zip_uses_ditto(self, tmp_path):
        """测试 .app 压缩包使用 ditto"""
        tools = FakeTools(tmp_path / "mnt", extracted={"Firefox.app": b""})

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            payload = ArchiveExtractor().locate_payload(tmp_path / "firefox.zip", DownloadType.ZIP)

        assert payload.name == "Firefox.app"
        assert tools.calls[0][:3] == ["ditto", "-x", "-k"]

    def test_tbz(self, tmp_path):
        """测试 tar.bz2"""
        tools = FakeTools(tmp_path / "mnt", extracted={"Firefox.app": b""})

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            payload = ArchiveExtractor().locate_payload(tmp_path / "firefox.tbz", DownloadType.TBZ)

        assert payload.name == "Firefox.app"
        assert tools.calls[0][0] == "tar"

    def test_app_in_dmg_is_copied_and_detached(self, tmp_path, make_app):
        """测试从只读挂载的镜像复制 .app 并卸载"""
        mount = tmp_path / "mnt"
        mount.mkdir()
        make_app(mount)
        work = tmp_path / "run"
        work.mkdir()
        tools = FakeTools(mount)

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            payload = ArchiveExtractor().locate_payload(work / "firefox.dmg", DownloadType.DMG)

        assert payload == work / "Firefox.app"
        assert (payload / "Contents" / "Info.plist").is_file()
        assert tools.commands() == ["hdiutil imageinfo", "hdiutil attach", "hdiutil detach"]
        assert "-readonly" in tools.calls[1]

    def test_license_image_is_converted(self, tmp_path, make_app):
        """测试带许可协议的镜像先转换"""
        mount = tmp_path / "mnt"
        mount.mkdir()
        (mount / "Tool.pkg").write_bytes(b"pkg")
        dmg = tmp_path / "tool.dmg"
        dmg.write_bytes(b"original")
        tools = FakeTools(mount, license_agreement=True)

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            payload = ArchiveExtractor().locate_payload(dmg, DownloadType.PKG_IN_DMG)

        assert payload == tmp_path / "Tool.pkg"
        assert dmg.read_bytes() == b"converted"
        assert "hdiutil convert" in tools.commands()

    def test_dmg_in_zip(self, tmp_path):
        """测试 zip 中的 dmg 中的 .pkg"""
        mount = tmp_path / "mnt"
        mount.mkdir()
        (mount / "Tool.pkg").write_bytes(b"pkg")
        work = tmp_path / "run"
        work.mkdir()
        tools = FakeTools(mount, extracted={"Tool.dmg": b"dmg"})

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            payload = ArchiveExtractor().locate_payload(work / "tool.zip", DownloadType.PKG_IN_DMG_IN_ZIP)

        assert payload == work / "Tool.pkg"
        attach = next(call for call in tools.calls if call[:2] == ["hdiutil", "attach"])
        assert attach[2] == str(work / "Tool.dmg")

    def test_missing_payload_still_detaches(self, tmp_path):
        """测试镜像内找不到载荷时仍然卸载"""
        mount = tmp_path / "mnt"
        mount.mkdir()
        tools = FakeTools(mount)

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            with pytest.raises(PayloadNotFoundError) as exc_info:
                ArchiveExtractor().locate_payload(tmp_path / "empty.dmg", DownloadType.DMG)

        assert exc_info.value.extension == "app"
        assert tools.commands()[-1] == "hdiutil detach"

    def test_missing_pkg_in_zip(self, tmp_path):
        """测试 zip 中没有 .pkg"""
        tools = FakeTools(tmp_path / "mnt", extracted={"README.txt": b"hi"})

        with patch("intunepkg.package.extractor.run_command", side_effect=tools):
            with pytest.raises(PayloadNotFoundError):
                ArchiveExtractor().locate_payload(tmp_path / "tool.zip", DownloadType.PKG_IN_ZIP)

    def test_unzip_failure(self, tmp_path):
        """测试解压失败"""
        with patch("intunepkg.package.extractor.run_command",
                   side_effect=CommandError(["unzip"], 9, "not a zip")):
            with pytest.raises(ExtractionError) as exc_info:
                ArchiveExtractor().locate_payload(tmp_path / "bad.zip", DownloadType.PKG_IN_ZIP)

        assert not isinstance(exc_info.value, PayloadNotFoundError)

    def test_detach_failure_is_logged(self, tmp_path):
        """测试卸载失败不抛出"""
        with patch("intunepkg.package.extractor.run_command",
                   side_effect=CommandError(["hdiutil"], 16, "busy")):
            ArchiveExtractor().detach(tmp_path / "mnt")
