"""
版本解析模块

从 .pkg（Distribution / PackageInfo）或 .app（Info.plist）中读取权威版本号。
标识不存在时返回哨兵值 UNRESOLVED。
"""

import plistlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..utils.logging import debug, info, warning, LogStage
from ..utils.paths import remove_path
from ..utils.process import CommandError, run_command

UNRESOLVED = "None"

_PKG_REF_RE = re.compile(r'<pkg-ref.*?id="(.*?)".*?version="(.*?)".*?>', re.DOTALL)
_PKG_INFO_RE = re.compile(r'<pkg-info.*?identifier="(.*?)".*?version="(.*?)".*?>', re.DOTALL)


class VersionMismatchError(Exception):
    """双架构载荷版本不一致"""

    def __init__(self, versions: List[str]):
        self.versions = versions
        super().__init__(f"各架构版本不一致: {', '.join(versions)}")


@dataclass
class AppBundleInfo:
    """应用包基本信息"""
    bundle_id: Optional[str]
    version: Optional[str]
    name: Optional[str] = None
    executable: Optional[str] = None
    minimum_os: Optional[str] = None


def parse_pkg_refs(xml_text: str, pattern: "re.Pattern" = _PKG_REF_RE) -> Dict[str, str]:
    """解析 pkg-ref / pkg-info 中的 id -> version 映射，空版本忽略"""
    refs: Dict[str, str] = {}
    for match in pattern.finditer(xml_text):
        identifier, version = match.group(1), match.group(2)
        if identifier and version:
            refs.setdefault(identifier, version)
    return refs


def read_app_info(app_path: Union[str, Path]) -> AppBundleInfo:
    """读取 Contents/Info.plist

    Raises:
        OSError: 文件不存在或不可读
        plistlib.InvalidFileException: plist 损坏
    """
    plist_path = Path(app_path) / "Contents" / "Info.plist"
    with open(plist_path, "rb") as f:
        data = plistlib.load(f)

    return AppBundleInfo(
        bundle_id=data.get("CFBundleIdentifier"),
        version=data.get("CFBundleShortVersionString"),
        name=data.get("CFBundleName"),
        executable=data.get("CFBundleExecutable"),
        minimum_os=data.get("LSMinimumSystemVersion"),
    )


class VersionResolver:
    """版本解析器"""

    def pkg_version(self, pkg_path: Union[str, Path], expected_id: str) -> str:
        """展开 .pkg 并读取与期望包标识匹配的版本"""
        pkg_path = Path(pkg_path)
        expanded = pkg_path.parent / "expanded_pkg"
        remove_path(expanded)

        try:
            run_command(["pkgutil", "--expand-full", pkg_path, expanded])
        except CommandError as e:
            warning(f"展开安装包失败: {e}", stage=LogStage.RESOLVE)
            return UNRESOLVED

        try:
            refs: Dict[str, str] = {}
            distribution = expanded / "Distribution"
            if distribution.is_file():
                refs = parse_pkg_refs(distribution.read_text(encoding="utf-8", errors="replace"))

            if expected_id not in refs:
                for package_info in sorted(expanded.rglob("PackageInfo"), key=lambda p: len(str(p))):
                    text = package_info.read_text(encoding="utf-8", errors="replace")
                    refs.update({k: v for k, v in parse_pkg_refs(text, _PKG_INFO_RE).items() if k not in refs})
                    if expected_id in refs:
                        break
        except OSError as e:
            warning(f"读取安装包元数据失败: {e}", stage=LogStage.RESOLVE)
            return UNRESOLVED
        finally:
            remove_path(expanded)

        version = refs.get(expected_id)
        if version is None:
            debug(f"安装包内的标识: {sorted(refs)}", stage=LogStage.RESOLVE)
            warning(f"安装包中未找到标识 {expected_id}", stage=LogStage.RESOLVE)
            return UNRESOLVED

        info(f"  {expected_id} 版本: {version}", stage=LogStage.RESOLVE)
        return version

    def app_version(self, app_path: Union[str, Path], expected_bundle_id: str) -> str:
        """读取与期望 bundle id 匹配的应用版本"""
        try:
            bundle = read_app_info(app_path)
        except (OSError, plistlib.InvalidFileException, ValueError) as e:
            warning(f"读取 Info.plist 失败: {e}", stage=LogStage.RESOLVE)
            return UNRESOLVED

        if bundle.bundle_id != expected_bundle_id or not bundle.version:
            warning(
                f"应用 bundle id 不匹配: 期望 {expected_bundle_id}, 实际 {bundle.bundle_id}",
                stage=LogStage.RESOLVE,
            )
            return UNRESOLVED

        info(f"  {expected_bundle_id} 版本: {bundle.version}", stage=LogStage.RESOLVE)
        return bundle.version

    def resolve(self, payload: Union[str, Path], expected_id: str) -> str:
        """按载荷类型分派"""
        payload = Path(payload)
        if payload.suffix.lower() == ".app":
            return self.app_version(payload, expected_id)
        return self.pkg_version(payload, expected_id)

    @staticmethod
    def require_matching(versions: List[str]) -> str:
        """双架构版本必须一致

        Raises:
            VersionMismatchError: 数量不是 2 或版本不同
        """
        if len(versions) != 2 or versions[0] != versions[1]:
            raise VersionMismatchError(versions)
        return versions[0]
