"""
发布管道模块

使用管道模式按顺序执行发布步骤：

    检查 Intune -> 检查缓存 -> [下载 -> 打包 -> 复查] -> 加密 -> 创建应用 -> 打开内容版本
    -> 注册文件 -> 等待存储地址 -> 分块上传 -> 提交 -> 等待提交 -> 设置内容版本
    -> 确认可见 -> 分配 -> 对账 -> 记录计数 -> 通知 -> 清理（总是执行）

错误分三类：
- FatalPublishError：直接抛给调用者；
- PublishError：记录日志，执行补偿（若已创建远端应用）并通知，返回失败结果；
- 分类/分组/对账失败：只记录警告。
"""

import time
from typing import List, Optional

from ..cache.store import CacheStore
from ..config.loader import ConfigError, ConfigValidationError, LabelLoader
from ..config.schema import DeploymentDescriptor, PipelineConfig
from ..graph.client import GraphClient, GraphError
from ..notify import create_notifier
from ..package.downloader import Downloader
from ..package.processor import PayloadProcessor
from ..upload.encryptor import ContentEncryptor
from ..upload.poller import CommitPoller
from ..upload.uploader import ChunkedUploader
from ..utils.logging import debug, error, info, success, warning, LogStage
from .lock import LabelLockTimeout, label_lock
from .publish_context import (
    FatalPublishError,
    ProgressCallback,
    PublishContext,
    PublishError,
    PublishResult,
    PublishServices,
)
from .steps import (
    AssignStep,
    AwaitCommitStep,
    AwaitStorageURIStep,
    AwaitVisibilityStep,
    CheckCacheStep,
    CheckIntuneVersionStep,
    CleanupStep,
    CommitStep,
    CreateAppStep,
    DownloadStep,
    EncryptStep,
    NotifyStep,
    OpenContentVersionStep,
    PackageStep,
    PublishStep,
    RecheckIntuneVersionStep,
    ReconcileStep,
    RecordUploadCountStep,
    RegisterFileStep,
    SetCommittedVersionStep,
    UploadChunksStep,
    build_report,
    write_upload_marker,
)


def build_services(config: PipelineConfig) -> PublishServices:
    """根据配置创建默认协作者

    Raises:
        GraphError: 访问令牌环境变量未设置
    """
    cache = CacheStore(config.paths.cache_root, verify_owner=config.paths.verify_cache_owner)
    return PublishServices(
        cache=cache,
        graph=GraphClient.from_config(config.graph),
        downloader=Downloader(
            max_retries=config.download.max_retries,
            base_delay=config.download.base_retry_delay_sec,
            timeout=config.download.timeout_sec,
        ),
        processor=PayloadProcessor(cache),
        encryptor=ContentEncryptor(),
        uploader=ChunkedUploader.from_config(config.upload),
        poller=CommitPoller(config.upload),
        notifier=create_notifier(config.notifications),
    )


class PublishPipeline:
    """发布管道，负责协调发布步骤的执行"""

    def __init__(self, config: PipelineConfig, services: Optional[PublishServices] = None,
                 label_loader: Optional[LabelLoader] = None):
        self.config = config
        self.services = services or build_services(config)
        self.label_loader = label_loader or LabelLoader(config.paths.managed_titles_root)
        self._steps: List[PublishStep] = []
        self._cleanup_step = CleanupStep()

        self._init_default_steps()

    def _init_default_steps(self):
        """初始化默认的发布步骤"""
        self._steps = [
            CheckIntuneVersionStep(),
            CheckCacheStep(),
            DownloadStep(),
            PackageStep(),
            RecheckIntuneVersionStep(),
            EncryptStep(),
            CreateAppStep(),
            OpenContentVersionStep(),
            RegisterFileStep(),
            AwaitStorageURIStep(),
            UploadChunksStep(),
            CommitStep(),
            AwaitCommitStep(),
            SetCommittedVersionStep(),
            AwaitVisibilityStep(),
            AssignStep(),
            ReconcileStep(),
            RecordUploadCountStep(),
            NotifyStep(),
        ]

    def add_step(self, step: PublishStep, position: Optional[int] = None):
        """添加发布步骤"""
        if position is None:
            self._steps.append(step)
        else:
            self._steps.insert(position, step)

    def remove_step(self, step_name: str):
        """移除发布步骤"""
        self._steps = [step for step in self._steps if step.name != step_name]

    def get_steps(self) -> List[PublishStep]:
        """获取所有发布步骤"""
        return self._steps.copy()

    def validate_pipeline(self) -> List[str]:
        """验证发布管道的完整性

        Returns:
            List[str]: 验证错误列表，空列表表示验证通过
        """
        errors = []

        if not self._steps:
            errors.append("发布管道中没有步骤")
            return errors

        prev_end = 0
        for step in self._steps:
            start, end = step.get_progress_range()
            if start != prev_end:
                errors.append(f"步骤 '{step.name}' 的进度范围不连续: 期望起始 {prev_end}%, 实际 {start}%")
            if start >= end:
                errors.append(f"步骤 '{step.name}' 的进度范围无效: {start}% - {end}%")
            prev_end = end

        if prev_end != 100:
            errors.append(f"发布管道的总进度范围不是100%: {prev_end}%")

        return errors

    def close(self) -> None:
        """关闭 HTTP 客户端"""
        self.services.graph.close()
        self.services.downloader.close()
        self.services.uploader.close()

    # ------------------------------------------------------------------
    # 运行
    # ------------------------------------------------------------------

    def load_descriptor(self, folder_name: str) -> DeploymentDescriptor:
        """加载标签描述

        Raises:
            FatalPublishError: 缺少追踪 ID
            PublishError: 其他描述错误
        """
        try:
            return self.label_loader.load(folder_name)
        except ConfigValidationError as e:
            if any("tracking_id" in err.get("loc", ()) for err in e.errors):
                raise FatalPublishError(f"{folder_name} 缺少追踪 ID") from e
            raise PublishError(f"{e}\n{e.format_errors()}") from e
        except ConfigError as e:
            raise PublishError(str(e)) from e

    def run(self, folder_name: str, progress_callback: Optional[ProgressCallback] = None) -> PublishResult:
        """处理一个受管标签目录

        Returns:
            PublishResult: 运行结果（非致命失败也通过结果返回）

        Raises:
            FatalPublishError: 致命错误
            PublishError: 未预期的异常（已执行补偿）
        """
        start_time = time.time()
        label = LabelLoader.split_folder_name(folder_name)[0]

        try:
            descriptor = self.load_descriptor(folder_name)
        except FatalPublishError as e:
            error(str(e), stage=LogStage.ERROR)
            raise
        except PublishError as e:
            error(f"加载标签描述失败: {e}", stage=LogStage.ERROR)
            return PublishResult.failed(folder_name, label, str(e))

        context = PublishContext(
            config=self.config,
            services=self.services,
            descriptor=descriptor,
            folder_name=folder_name,
            folder_path=self.label_loader.folder_path(folder_name),
            progress_callback=progress_callback,
        )
        context.stats["start_time"] = start_time

        try:
            with label_lock(self.services.cache, descriptor.label, self.config.lock.timeout_sec):
                result = self._execute(context)
        except LabelLockTimeout as e:
            error(str(e), stage=LogStage.ERROR)
            result = PublishResult.failed(folder_name, descriptor.label, str(e))

        result.duration = time.time() - start_time
        return result

    def _execute(self, context: PublishContext) -> PublishResult:
        descriptor = context.descriptor
        info(f"开始处理 {context.folder_name}", stage=LogStage.INIT)

        try:
            for step in self._steps:
                if context.finished:
                    break
                if not step.should_run(context):
                    debug(f"跳过步骤: {step.description}", stage=step.stage)
                    continue

                start, _ = step.get_progress_range()
                context.report_progress(step.description, start, "")
                debug(f"执行步骤: {step.description}", stage=step.stage)
                step.execute(context)

            context.report_progress("完成", 100, "")

            if context.finished:
                return PublishResult(
                    folder=context.folder_name,
                    label=descriptor.label,
                    success=True,
                    version=descriptor.effective_version(),
                    skipped=True,
                    message=context.finish_message,
                )

            message = f"{descriptor.display_name} {descriptor.version_actual} 已上传到 Intune"
            success(message, stage=LogStage.DONE)
            return PublishResult(
                folder=context.folder_name,
                label=descriptor.label,
                success=True,
                version=descriptor.version_actual,
                app_id=context.app_id,
                message=message,
                warnings=list(context.warnings),
            )

        except FatalPublishError as e:
            error(f"{context.folder_name}: {e}", stage=LogStage.ERROR)
            context.compensation.run()
            raise

        except PublishError as e:
            error(f"{context.folder_name}: {e}", stage=LogStage.ERROR)
            return self._fail(context, str(e))

        except Exception as e:
            error(f"{context.folder_name}: 处理异常: {e}", stage=LogStage.ERROR)
            context.compensation.run()
            raise PublishError(f"{context.folder_name} 处理异常: {e}") from e

        finally:
            self._cleanup_step.execute(context)

    def _fail(self, context: PublishContext, message: str) -> PublishResult:
        """失败收尾：执行补偿，已修改远端时发送失败通知"""
        failures = context.compensation.run()
        for description in failures:
            context.add_warning(f"补偿失败: {description}")

        if context.remote_mutated:
            self.services.notifier.notify(build_report(context, success=False, message=message))

        return PublishResult.failed(
            context.folder_name,
            context.descriptor.label,
            message,
            version=context.descriptor.effective_version(),
            warnings=list(context.warnings),
        )

    # ------------------------------------------------------------------
    # 移除
    # ------------------------------------------------------------------

    def remove_automation(self, folder_name: str) -> int:
        """删除该追踪 ID 的全部远端应用并删除 .uploaded 标记

        Returns:
            int: 删除的远端应用数量

        Raises:
            FatalPublishError: 无法确定追踪 ID
            PublishError: Graph 请求失败
        """
        tracking_id = LabelLoader.split_folder_name(folder_name)[1]
        if not tracking_id:
            tracking_id = self.load_descriptor(folder_name).tracking_id

        graph = self.services.graph
        try:
            records = graph.find_apps_by_tracking_id(tracking_id)
            for record in records:
                graph.remove_all_assignments(record.id)
                graph.delete_app(record.id)
                info(f"已删除 {record.display_name} ({record.version})", stage=LogStage.CLEANUP)
        except GraphError as e:
            raise PublishError(f"移除 {folder_name} 失败: {e}") from e

        folder_path = self.label_loader.folder_path(folder_name)
        if folder_path.is_dir():
            try:
                write_upload_marker(folder_path, 0)
            except OSError as e:
                warning(f"删除上传标记失败: {e}", stage=LogStage.CLEANUP)

        success(f"{folder_name}: 已删除 {len(records)} 个远端应用", stage=LogStage.DONE)
        return len(records)
