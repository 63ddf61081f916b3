"""
打包步骤

解包、签名校验、版本解析与封装都在 PayloadProcessor 中完成。
签名被拒、团队 ID 不符与载荷缺失是致命错误。
"""

from ...package.architecture import ArchitectureError
from ...package.creator import PackagingError
from ...package.extractor import ExtractionError, PayloadNotFoundError
from ...package.processor import VersionResolutionError
from ...package.signature import SignatureError
from ...package.version import VersionMismatchError
from ...utils.logging import success, LogStage
from ...utils.process import CommandError
from ..publish_context import FatalPublishError, PublishContext, PublishError
from .publish_step import PublishStep


class PackageStep(PublishStep):
    """处理载荷并把产物放入缓存"""

    skip_on_cache_hit = True

    def __init__(self):
        super().__init__("package", "处理并打包载荷", LogStage.PACKAGE)

    def get_progress_range(self) -> tuple[int, int]:
        return (25, 40)

    def execute(self, context: PublishContext) -> None:
        descriptor = context.descriptor
        if context.download_path is None:
            raise PublishError("没有可处理的下载文件")

        try:
            processed = context.services.processor.process(
                descriptor, context.download_path, context.download_path_x86
            )
        except (PayloadNotFoundError, SignatureError) as e:
            raise FatalPublishError(str(e)) from e
        except (ExtractionError, VersionResolutionError, VersionMismatchError,
                ArchitectureError, PackagingError, CommandError, OSError, ValueError) as e:
            raise PublishError(f"处理载荷失败: {e}") from e

        descriptor.bundle_id_actual = processed.bundle_id
        descriptor.version_actual = processed.version
        descriptor.local_path = str(processed.path)
        context.artifact_path = processed.path
        success(f"产物就绪: {processed.path.name}", stage=LogStage.PACKAGE)
