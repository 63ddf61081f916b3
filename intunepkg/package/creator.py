"""
安装包构建模块

把 .app 包装为 Intune 可部署的容器：
- DMG：hdiutil create
- PKG：pkgbuild 组件包 + productbuild 分发包
- 通用 PKG：arm64 与 x86_64 两个组件包，由 distribution.xml 中的 is_arm() 选择
"""

import plistlib
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from xml.sax.saxutils import escape, quoteattr

from ..utils.logging import debug, info, success, LogStage
from ..utils.paths import copy_item, ensure_directory, format_size, remove_path
from ..utils.process import CommandError, run_command
from .version import read_app_info


class PackagingError(Exception):
    """打包错误"""
    pass


@dataclass
class BuiltPackage:
    """构建结果"""
    path: Path
    app_name: str
    bundle_id: str
    version: str


def _app_identity(app_path: Path) -> BuiltPackage:
    try:
        bundle = read_app_info(app_path)
    except (OSError, ValueError) as e:
        raise PackagingError(f"无法读取 {app_path.name} 的 Info.plist: {e}") from e

    if not bundle.bundle_id or not bundle.version:
        raise PackagingError(f"{app_path.name} 缺少 CFBundleIdentifier 或 CFBundleShortVersionString")

    name = bundle.name or app_path.stem
    return BuiltPackage(path=app_path, app_name=name, bundle_id=bundle.bundle_id, version=bundle.version)


def _run(cmd: list, what: str, output: Optional[Path] = None) -> None:
    """执行构建命令，失败时删除不完整的输出文件"""
    try:
        run_command(cmd)
    except CommandError as e:
        if output is not None:
            remove_path(output)
        raise PackagingError(f"{what}失败: {e}") from e


def make_non_relocatable(component_plist: Path) -> None:
    """组件 plist 中所有 bundle 设为不可重定位，保证安装到 /Applications"""
    with open(component_plist, "rb") as f:
        bundles = plistlib.load(f)

    for bundle in bundles:
        if isinstance(bundle, dict):
            bundle["BundleIsRelocatable"] = False

    with open(component_plist, "wb") as f:
        plistlib.dump(bundles, f)


def build_component(root: Path, component_plist: Path, identifier: str, version: str, output: Path) -> Path:
    """分析 root 并构建组件包"""
    _run(["pkgbuild", "--analyze", "--root", root, component_plist], "pkgbuild 分析")
    make_non_relocatable(component_plist)
    _run(
        [
            "pkgbuild",
            "--root", root,
            "--identifier", identifier,
            "--version", version,
            "--component-plist", component_plist,
            output,
        ],
        "pkgbuild 构建组件包",
    )
    return output


def customize_distribution(xml_text: str, title: str) -> str:
    """为 productbuild --synthesize 生成的 distribution.xml 加上标题、域和 rootVolumeOnly"""
    xml_text = re.sub(
        r"(<installer-gui-script[^>]*>)",
        lambda m: f"{m.group(1)}\n    <title>{escape(title)}</title>",
        xml_text,
        count=1,
    )
    xml_text = xml_text.replace(
        "<options",
        '<domains enable_anywhere="false" enable_currentUserHome="false" enable_localSystem="true"/>\n    <options',
        1,
    )

    def add_root_volume(match: "re.Match") -> str:
        element = match.group(0)
        if "rootVolumeOnly" in element:
            return element
        return element[:-2].rstrip() + ' rootVolumeOnly="true"/>'

    return re.sub(r"<options [^>]*/>", add_root_volume, xml_text, count=1)


def universal_distribution(app_name: str, bundle_id: str, version: str) -> str:
    """通用安装包的 distribution.xml（运行时按 CPU 品牌选择组件）"""
    title = escape(f"{app_name}-{version}")
    arm_id = quoteattr(f"{bundle_id}-arm")
    x86_id = quoteattr(f"{bundle_id}-x86")
    ver = quoteattr(version)
    return f"""<?xml version="1.0" encoding="utf-8"?>
<installer-gui-script minSpecVersion="1">
    <title>{title}</title>
    <pkg-ref id={arm_id}/>
    <pkg-ref id={x86_id}/>
    <options customize="allow" require-scripts="false" rootVolumeOnly="true" hostArchitectures="x86_64,arm64"/>
    <script>
    <![CDATA[
    function is_arm() {{
      if(system.sysctl("machdep.cpu.brand_string").includes("Apple")) {{
        return true;
      }}
      return false;
    }}
    ]]>
    </script>
    <choices-outline>
        <line choice="default">
            <line choice={arm_id}/>
            <line choice={x86_id}/>
        </line>
    </choices-outline>
    <choice id="default" title={quoteattr(f"{app_name}-{version}")}/>
    <choice id={arm_id} title={quoteattr(f"{app_name} ARM")} visible="true" enabled="is_arm()" selected="is_arm()">
        <pkg-ref id={arm_id}/>
    </choice>
    <pkg-ref id={arm_id} version={ver} onConclusion="none">component-arm.pkg</pkg-ref>
    <choice id={x86_id} title={quoteattr(f"{app_name} x86")} visible="true" enabled="! is_arm()" selected="! is_arm()">
        <pkg-ref id={x86_id}/>
    </choice>
    <pkg-ref id={x86_id} version={ver} onConclusion="none">component-x86.pkg</pkg-ref>
</installer-gui-script>
"""


class DMGCreator:
    """将 .app 封装为压缩 DMG"""

    def create(self, app_path: Union[str, Path], output_path: Union[str, Path]) -> BuiltPackage:
        app_path = Path(app_path)
        output_path = Path(output_path)
        identity = _app_identity(app_path)

        ensure_directory(output_path.parent)
        remove_path(output_path)

        info(f"创建 DMG: {output_path.name}", stage=LogStage.PACKAGE)
        _run(
            [
                "hdiutil", "create",
                "-fs", "APFS",
                "-srcfolder", app_path,
                "-volname", f"{identity.app_name}-{identity.version}",
                "-format", "UDZO",
                "-nospotlight",
                "-anyowners",
                output_path,
            ],
            "hdiutil 创建 DMG",
            output_path,
        )

        identity.path = output_path
        success(f"DMG 已创建: {output_path} ({format_size(output_path.stat().st_size)})", stage=LogStage.PACKAGE)
        return identity


class PKGCreator:
    """将单个 .app 封装为分发式 PKG（安装到 /Applications）"""

    def create(self, app_path: Union[str, Path], output_path: Union[str, Path]) -> BuiltPackage:
        app_path = Path(app_path)
        output_path = Path(output_path)
        identity = _app_identity(app_path)

        ensure_directory(output_path.parent)
        remove_path(output_path)
        info(f"创建 PKG: {output_path.name}", stage=LogStage.PACKAGE)

        with tempfile.TemporaryDirectory(prefix="intunepkg_pkg_") as tmp:
            tmp_dir = Path(tmp)
            root = tmp_dir / "root"
            copy_item(app_path, root / "Applications" / app_path.name)

            component = build_component(
                root,
                tmp_dir / "component.plist",
                identity.bundle_id,
                identity.version,
                tmp_dir / f"{identity.app_name}-{identity.version}-component.pkg",
            )

            distribution = tmp_dir / "distribution.xml"
            _run(["productbuild", "--synthesize", "--package", component, distribution], "productbuild 生成 distribution")
            distribution.write_text(
                customize_distribution(
                    distribution.read_text(encoding="utf-8"),
                    f"{identity.app_name} - {identity.version}",
                ),
                encoding="utf-8",
            )
            debug(f"distribution.xml 已更新: {distribution}", stage=LogStage.PACKAGE)

            _run(
                ["productbuild", "--distribution", distribution, "--package-path", tmp_dir, output_path],
                "productbuild 构建分发包",
                output_path,
            )

        identity.path = output_path
        success(f"PKG 已创建: {output_path} ({format_size(output_path.stat().st_size)})", stage=LogStage.PACKAGE)
        return identity


class UniversalPKGCreator:
    """将 arm64 与 x86_64 两个 .app 合并为一个通用 PKG"""

    def create(self, arm_app: Union[str, Path], x86_app: Union[str, Path],
               output_path: Union[str, Path]) -> BuiltPackage:
        arm_app = Path(arm_app)
        x86_app = Path(x86_app)
        output_path = Path(output_path)
        identity = _app_identity(arm_app)

        ensure_directory(output_path.parent)
        remove_path(output_path)
        info(f"创建通用 PKG: {output_path.name}", stage=LogStage.PACKAGE)
        debug(f"  arm64: {arm_app}", stage=LogStage.PACKAGE)
        debug(f"  x86_64: {x86_app}", stage=LogStage.PACKAGE)

        with tempfile.TemporaryDirectory(prefix="intunepkg_univ_") as tmp:
            tmp_dir = Path(tmp)
            root_arm = tmp_dir / "root_arm"
            root_x86 = tmp_dir / "root_x86"
            copy_item(arm_app, root_arm / "Applications" / arm_app.name)
            copy_item(x86_app, root_x86 / "Applications" / x86_app.name)

            build_component(root_arm, tmp_dir / "component_arm.plist",
                            identity.bundle_id, identity.version, tmp_dir / "component-arm.pkg")
            build_component(root_x86, tmp_dir / "component_x86.plist",
                            identity.bundle_id, identity.version, tmp_dir / "component-x86.pkg")

            distribution = tmp_dir / "distribution.xml"
            distribution.write_text(
                universal_distribution(identity.app_name, identity.bundle_id, identity.version),
                encoding="utf-8",
            )

            _run(
                ["productbuild", "--distribution", distribution, "--package-path", tmp_dir, output_path],
                "productbuild 构建通用包",
                output_path,
            )

        identity.path = output_path
        success(f"通用 PKG 已创建: {output_path} ({format_size(output_path.stat().st_size)})", stage=LogStage.PACKAGE)
        return identity
