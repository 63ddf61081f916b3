"""
下载步骤
"""

from ...package.downloader import DownloadError
from ...utils.logging import info, LogStage
from ..publish_context import PublishContext, PublishError
from .publish_step import PublishStep


class DownloadStep(PublishStep):
    """下载载荷；双架构构建时另下载 x86_64 载荷，各自使用独立的运行目录"""

    skip_on_cache_hit = True

    def __init__(self):
        super().__init__("download", "下载载荷", LogStage.DOWNLOAD)

    def get_progress_range(self) -> tuple[int, int]:
        return (8, 25)

    def execute(self, context: PublishContext) -> None:
        descriptor = context.descriptor
        services = context.services
        fallback = f"{descriptor.display_name}-{descriptor.version_expected or 'latest'}"

        try:
            run_dir = services.cache.run_dir(descriptor.label)
            context.run_dirs.append(run_dir)
            context.download_path = services.downloader.download(descriptor.download_url, run_dir, fallback)

            if descriptor.is_dual_arch_build:
                info("双架构构建，下载 x86_64 载荷", stage=LogStage.DOWNLOAD)
                run_dir_x86 = services.cache.run_dir(descriptor.label)
                context.run_dirs.append(run_dir_x86)
                context.download_path_x86 = services.downloader.download(
                    descriptor.download_url_x86, run_dir_x86, f"{fallback}-x86_64"
                )
        except DownloadError as e:
            raise PublishError(f"下载失败: {e}") from e
        except OSError as e:
            raise PublishError(f"创建下载目录失败: {e}") from e
