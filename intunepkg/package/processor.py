"""
载荷处理模块

串联 解包 -> 签名校验 -> 版本解析 -> 打包，并把产物放入缓存路径。
支持 .pkg 下载、单架构 .app 下载和双架构 .app 合并。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..cache.store import CacheStore
from ..config.schema import Architecture, DeploymentDescriptor, DeploymentKind
from ..utils.logging import info, success, warning, LogStage
from .architecture import ArchitectureInspector
from .creator import DMGCreator, PKGCreator, PackagingError, UniversalPKGCreator
from .extractor import ArchiveExtractor
from .signature import SignatureVerifier
from .version import UNRESOLVED, VersionResolver


class VersionResolutionError(Exception):
    """无法从载荷中解析版本"""
    pass


@dataclass
class ProcessedPayload:
    """处理结果"""
    path: Path
    bundle_id: str
    version: str
    app_name: Optional[str] = None


class PayloadProcessor:
    """载荷处理器

    各协作者均可注入，便于测试替换。
    """

    def __init__(
        self,
        cache: CacheStore,
        extractor: Optional[ArchiveExtractor] = None,
        verifier: Optional[SignatureVerifier] = None,
        resolver: Optional[VersionResolver] = None,
        inspector: Optional[ArchitectureInspector] = None,
        dmg_creator: Optional[DMGCreator] = None,
        pkg_creator: Optional[PKGCreator] = None,
        universal_creator: Optional[UniversalPKGCreator] = None,
    ):
        self.cache = cache
        self.extractor = extractor or ArchiveExtractor()
        self.verifier = verifier or SignatureVerifier()
        self.resolver = resolver or VersionResolver()
        self.inspector = inspector or ArchitectureInspector()
        self.dmg_creator = dmg_creator or DMGCreator()
        self.pkg_creator = pkg_creator or PKGCreator()
        self.universal_creator = universal_creator or UniversalPKGCreator()

    def process(self, descriptor: DeploymentDescriptor, download: Path,
                download_x86: Optional[Path] = None) -> ProcessedPayload:
        """按下载类型分派处理

        Raises:
            PayloadNotFoundError / SignatureRejectedError / TeamIdMismatchError: 致命错误
            ExtractionError / VersionResolutionError / VersionMismatchError /
            ArchitectureError / PackagingError: 非致命错误
        """
        if descriptor.download_type.is_installer:
            return self.process_pkg(descriptor, download)

        if descriptor.is_dual_arch_build:
            if download_x86 is None:
                raise PackagingError("双架构构建缺少 x86_64 下载文件")
            return self.process_dual_app(descriptor, download, download_x86)

        return self.process_app(descriptor, download)

    def _checked_version(self, descriptor: DeploymentDescriptor, version: str) -> str:
        if version == UNRESOLVED:
            if descriptor.ignore_version_detection and descriptor.version_expected:
                warning(f"未解析到版本，使用期望版本 {descriptor.version_expected}", stage=LogStage.RESOLVE)
                return descriptor.version_expected
            raise VersionResolutionError(f"无法解析 {descriptor.bundle_id_expected} 的版本")

        if descriptor.version_expected and version != descriptor.version_expected:
            warning(f"实际版本 {version} 与期望版本 {descriptor.version_expected} 不同", stage=LogStage.RESOLVE)
        return version

    def _staging_path(self, descriptor: DeploymentDescriptor, version: str) -> Path:
        """构建输出先写入本次运行的临时目录，成功后再移入缓存"""
        return self.cache.run_dir(descriptor.label) / descriptor.final_filename(version)

    def process_pkg(self, descriptor: DeploymentDescriptor, download: Path) -> ProcessedPayload:
        """.pkg 类下载：校验后原样放入缓存"""
        payload = self.extractor.locate_payload(download, descriptor.download_type)
        self.verifier.verify(payload, descriptor.expected_team_id, is_installer=True)

        version = self._checked_version(
            descriptor, self.resolver.pkg_version(payload, descriptor.bundle_id_expected)
        )
        entry = self.cache.store(descriptor, payload, version)
        return ProcessedPayload(path=entry.path, bundle_id=descriptor.bundle_id_expected, version=version)

    def process_app(self, descriptor: DeploymentDescriptor, download: Path) -> ProcessedPayload:
        """.app 类下载：校验后封装为 DMG 或 PKG"""
        payload = self.extractor.locate_payload(download, descriptor.download_type)
        self.verifier.verify(payload, descriptor.expected_team_id, is_installer=False)

        version = self._checked_version(
            descriptor, self.resolver.app_version(payload, descriptor.bundle_id_expected)
        )
        output = self._staging_path(descriptor, version)

        if descriptor.deployment_kind == DeploymentKind.DMG:
            built = self.dmg_creator.create(payload, output)
        else:
            built = self.pkg_creator.create(payload, output)

        entry = self.cache.store(descriptor, built.path, version)
        return ProcessedPayload(path=entry.path, bundle_id=built.bundle_id, version=version,
                                app_name=built.app_name)

    def process_dual_app(self, descriptor: DeploymentDescriptor, download_arm: Path,
                         download_x86: Path) -> ProcessedPayload:
        """双架构：固定按 (arm64, x86_64) 顺序处理，再合并为通用 PKG"""
        apps = []
        versions = []
        for arch, download in ((Architecture.ARM64, download_arm), (Architecture.X86_64, download_x86)):
            info(f"处理 {arch.value} 载荷: {download.name}", stage=LogStage.EXTRACT)
            payload = self.extractor.locate_payload(download, descriptor.download_type)
            self.verifier.verify(payload, descriptor.expected_team_id, is_installer=False)
            versions.append(self.resolver.app_version(payload, descriptor.bundle_id_expected))
            apps.append(payload)

        version = self.resolver.require_matching(versions)
        version = self._checked_version(descriptor, version)
        success(f"两个架构版本一致: {version}", stage=LogStage.RESOLVE)

        self.inspector.validate(apps, [Architecture.ARM64, Architecture.X86_64])

        built = self.universal_creator.create(apps[0], apps[1], self._staging_path(descriptor, version))
        entry = self.cache.store(descriptor, built.path, version)
        return ProcessedPayload(path=entry.path, bundle_id=built.bundle_id, version=version,
                                app_name=built.app_name)
