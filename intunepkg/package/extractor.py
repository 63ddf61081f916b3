"""
归档解包模块

解开 zip / tbz / dmg / pkg 容器，定位 .pkg 安装包或 .app 应用包。
磁盘镜像以只读方式挂载；带许可协议的镜像先转换为无协议的可写镜像。
"""

import plistlib
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Union

from ..config.schema import DownloadType
from ..utils.logging import debug, info, warning, LogStage
from ..utils.paths import copy_item, move_item
from ..utils.process import CommandError, run_command


class ExtractionError(Exception):
    """解包错误"""
    pass


class PayloadNotFoundError(ExtractionError):
    """容器内未找到预期类型的载荷（致命，不重试）"""

    def __init__(self, extension: str, container: Path):
        self.extension = extension
        self.container = container
        super().__init__(f"在 {container} 中未找到 .{extension} 载荷")


def find_files(folder: Union[str, Path], extension: str) -> List[Path]:
    """递归查找指定扩展名的文件（跳过隐藏项）

    .app 匹配目录且不再深入其内部，其它扩展名匹配普通文件，大小写不敏感。
    结果按路径长度升序排列，最短者优先。
    """
    root = Path(folder)
    suffix = "." + extension.lower().lstrip(".")
    want_dir = suffix == ".app"
    matches: List[Path] = []

    def walk(directory: Path) -> None:
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            warning(f"无法读取目录 {directory}: {e}", stage=LogStage.EXTRACT)
            return

        for entry in entries:
            if entry.name.startswith("."):
                continue
            is_dir = entry.is_dir() and not entry.is_symlink()
            if entry.name.lower().endswith(suffix) and is_dir == want_dir:
                matches.append(entry)
                if is_dir:
                    continue
            if is_dir:
                walk(entry)

    if root.is_dir():
        walk(root)

    return sorted(matches, key=lambda p: (len(str(p)), str(p)))


class ArchiveExtractor:
    """归档解包器

    所有解包都落在下载文件所在目录（每次运行唯一的临时目录）。
    """

    def extract_zip(self, zip_path: Path, use_ditto: bool = False) -> Path:
        """解压 zip，.app 类压缩包使用 ditto 以保留扩展属性和符号链接"""
        folder = zip_path.parent
        if use_ditto:
            cmd = ["ditto", "-x", "-k", zip_path, folder]
        else:
            cmd = ["unzip", "-q", "-o", zip_path, "-d", folder]
        return self._run_extract(cmd, folder, zip_path)

    def extract_tbz(self, tbz_path: Path) -> Path:
        """解压 tar.bz2"""
        folder = tbz_path.parent
        return self._run_extract(["tar", "-xf", tbz_path, "-C", folder], folder, tbz_path)

    def _run_extract(self, cmd: list, folder: Path, source: Path) -> Path:
        info(f"解包 {source.name}", stage=LogStage.EXTRACT)
        try:
            run_command(cmd)
        except CommandError as e:
            raise ExtractionError(f"解包失败 {source.name}: {e}") from e
        return folder

    def has_license_agreement(self, dmg_path: Path) -> bool:
        """检查磁盘镜像是否附带软件许可协议"""
        try:
            result = run_command(["hdiutil", "imageinfo", dmg_path, "-plist"])
            image_info = plistlib.loads(result.stdout.encode("utf-8"))
        except (CommandError, plistlib.InvalidFileException, ValueError) as e:
            warning(f"读取镜像信息失败，按无许可协议处理: {e}", stage=LogStage.EXTRACT)
            return False

        properties = image_info.get("Properties", {}) if isinstance(image_info, dict) else {}
        return bool(properties.get("Software License Agreement", False))

    def convert_license_image(self, dmg_path: Path) -> Path:
        """将带许可协议的镜像转换为 UDRW 格式并替换原文件"""
        converted = dmg_path.with_name(dmg_path.stem + "_converted.dmg")
        info(f"镜像带有许可协议，转换为可写镜像: {dmg_path.name}", stage=LogStage.EXTRACT)
        try:
            run_command(["hdiutil", "convert", "-format", "UDRW", "-o", converted, dmg_path])
        except CommandError as e:
            raise ExtractionError(f"镜像转换失败: {e}") from e
        return move_item(converted, dmg_path)

    def attach(self, dmg_path: Path) -> Path:
        """挂载镜像并返回挂载点"""
        if self.has_license_agreement(dmg_path):
            self.convert_license_image(dmg_path)

        try:
            result = run_command(["hdiutil", "attach", dmg_path, "-nobrowse", "-readonly", "-plist"])
            attach_info = plistlib.loads(result.stdout.encode("utf-8"))
        except CommandError as e:
            raise ExtractionError(f"挂载镜像失败 {dmg_path.name}: {e}") from e
        except (plistlib.InvalidFileException, ValueError) as e:
            raise ExtractionError(f"无法解析 hdiutil 输出: {e}") from e

        for entity in attach_info.get("system-entities", []):
            mount_point = entity.get("mount-point")
            if mount_point:
                debug(f"镜像已挂载: {mount_point}", stage=LogStage.EXTRACT)
                return Path(mount_point)

        raise ExtractionError(f"挂载 {dmg_path.name} 后未找到挂载点")

    def detach(self, mount_point: Path) -> None:
        """卸载镜像，失败只记录日志"""
        try:
            run_command(["hdiutil", "detach", mount_point, "-force"])
            debug(f"镜像已卸载: {mount_point}", stage=LogStage.EXTRACT)
        except CommandError as e:
            warning(f"卸载镜像失败 {mount_point}: {e}", stage=LogStage.EXTRACT)

    @contextmanager
    def mounted_image(self, dmg_path: Path) -> Iterator[Path]:
        """作用域挂载：任何退出路径都会卸载"""
        mount_point = self.attach(dmg_path)
        try:
            yield mount_point
        finally:
            self.detach(mount_point)

    def _first(self, folder: Path, extension: str, container: Path) -> Path:
        found = find_files(folder, extension)
        if not found:
            raise PayloadNotFoundError(extension, container)
        if len(found) > 1:
            debug(f"找到 {len(found)} 个 .{extension}，取路径最短者: {found[0]}", stage=LogStage.EXTRACT)
        return found[0]

    def _copy_from_image(self, dmg_path: Path, extension: str, destination_dir: Path) -> Path:
        """挂载镜像，把载荷复制出来后再卸载"""
        with self.mounted_image(dmg_path) as mount_point:
            payload = self._first(mount_point, extension, dmg_path)
            destination = destination_dir / payload.name
            info(f"从镜像复制 {payload.name}", stage=LogStage.EXTRACT)
            return copy_item(payload, destination)

    def locate_payload(self, download_path: Union[str, Path], download_type: DownloadType) -> Path:
        """按下载类型解包并返回 .pkg 或 .app 路径

        Raises:
            ExtractionError: 外部工具失败或类型不支持
            PayloadNotFoundError: 未找到载荷
        """
        download_path = Path(download_path)
        work_dir = download_path.parent
        info(f"处理下载文件 {download_path.name} (类型: {download_type.value})", stage=LogStage.EXTRACT)

        if download_type == DownloadType.PKG:
            return download_path

        if download_type == DownloadType.PKG_IN_ZIP:
            self.extract_zip(download_path)
            return self._first(work_dir, "pkg", download_path)

        if download_type == DownloadType.PKG_IN_DMG:
            return self._copy_from_image(download_path, "pkg", work_dir)

        if download_type == DownloadType.PKG_IN_DMG_IN_ZIP:
            self.extract_zip(download_path)
            dmg = self._first(work_dir, "dmg", download_path)
            return self._copy_from_image(dmg, "pkg", work_dir)

        if download_type == DownloadType.ZIP:
            self.extract_zip(download_path, use_ditto=True)
            return self._first(work_dir, "app", download_path)

        if download_type == DownloadType.TBZ:
            self.extract_tbz(download_path)
            return self._first(work_dir, "app", download_path)

        if download_type == DownloadType.DMG:
            return self._copy_from_image(download_path, "app", work_dir)

        if download_type == DownloadType.APP_IN_DMG_IN_ZIP:
            self.extract_zip(download_path)
            dmg = self._first(work_dir, "dmg", download_path)
            return self._copy_from_image(dmg, "app", work_dir)

        raise ExtractionError(f"不支持的下载类型: {download_type}")

