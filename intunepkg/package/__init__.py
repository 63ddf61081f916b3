"""载荷处理模块

下载、解包、签名校验、版本解析、架构检测与安装包构建。
"""

from .architecture import (
    ArchitectureCountError,
    ArchitectureError,
    ArchitectureInspector,
    ArchitectureMismatchError,
    DetectedArch,
    InvalidAppBundleError,
)
from .creator import BuiltPackage, DMGCreator, PKGCreator, PackagingError, UniversalPKGCreator
from .downloader import DownloadError, Downloader
from .extractor import ArchiveExtractor, ExtractionError, PayloadNotFoundError, find_files
from .processor import PayloadProcessor, ProcessedPayload, VersionResolutionError
from .signature import (
    SignatureError,
    SignatureInfo,
    SignatureRejectedError,
    SignatureVerifier,
    TeamIdMismatchError,
)
from .version import UNRESOLVED, VersionMismatchError, VersionResolver

__all__ = [
    "ArchitectureCountError",
    "ArchitectureError",
    "ArchitectureInspector",
    "ArchitectureMismatchError",
    "DetectedArch",
    "InvalidAppBundleError",
    "BuiltPackage",
    "DMGCreator",
    "PKGCreator",
    "PackagingError",
    "UniversalPKGCreator",
    "DownloadError",
    "Downloader",
    "ArchiveExtractor",
    "ExtractionError",
    "PayloadNotFoundError",
    "find_files",
    "PayloadProcessor",
    "ProcessedPayload",
    "VersionResolutionError",
    "SignatureError",
    "SignatureInfo",
    "SignatureRejectedError",
    "SignatureVerifier",
    "TeamIdMismatchError",
    "UNRESOLVED",
    "VersionMismatchError",
    "VersionResolver",
]
