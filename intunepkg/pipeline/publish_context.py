"""
发布上下文模块

定义一次发布运行中共享的数据结构、协作者集合和异常类。
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..cache.store import CacheStore
from ..config.schema import DeploymentDescriptor, PipelineConfig
from ..graph.client import GraphClient
from ..graph.records import VersionRecord
from ..notify import Notifier
from ..package.downloader import Downloader
from ..package.processor import PayloadProcessor
from ..upload.encryptor import ContentEncryptor, EncryptedContent
from ..upload.poller import CommitPoller
from ..upload.session import UploadSession
from ..upload.uploader import ChunkedUploader
from .compensation import CompensationStack

# 进度回调类型：(步骤描述, 当前百分比, 总数, 消息)
ProgressCallback = Callable[[str, int, int, str], None]


class PublishError(Exception):
    """发布失败（非致命：记录日志并返回失败结果）"""
    pass


class FatalPublishError(PublishError):
    """致命错误：签名被拒、团队 ID 不符、载荷缺失或缺少追踪 ID，直接抛给调用者"""
    pass


@dataclass
class PublishServices:
    """流水线协作者，全部可替换"""
    cache: CacheStore
    graph: GraphClient
    downloader: Downloader
    processor: PayloadProcessor
    encryptor: ContentEncryptor
    uploader: ChunkedUploader
    poller: CommitPoller
    notifier: Notifier
    sleep: Callable[[float], Any] = time.sleep


@dataclass
class PublishContext:
    """发布上下文，包含一次运行中的共享数据"""
    config: PipelineConfig
    services: PublishServices
    descriptor: DeploymentDescriptor
    folder_name: str
    folder_path: Path
    progress_callback: Optional[ProgressCallback] = None

    # 运行过程中生成的数据
    run_dirs: List[Path] = field(default_factory=list)
    download_path: Optional[Path] = None
    download_path_x86: Optional[Path] = None
    artifact_path: Optional[Path] = None
    from_cache: bool = False
    remote_checked: bool = False
    remote_records: List[VersionRecord] = field(default_factory=list)
    encrypted: Optional[EncryptedContent] = None
    session: Optional[UploadSession] = None
    app_id: Optional[str] = None
    compensation: CompensationStack = field(default_factory=CompensationStack)

    # 结束状态
    finished: bool = False
    finish_message: str = ""
    remaining_versions: Optional[int] = None
    warnings: List[str] = field(default_factory=list)
    stats: Dict[str, float] = field(default_factory=dict)

    def finish(self, message: str) -> None:
        """提前成功结束，其余步骤不再执行"""
        self.finished = True
        self.finish_message = message

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def report_progress(self, step: str, percent: int, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(step, percent, 100, message)

    @property
    def remote_mutated(self) -> bool:
        """远端是否已创建应用对象"""
        return self.app_id is not None


@dataclass
class PublishResult:
    """一次运行的结果"""
    folder: str
    label: str
    success: bool
    version: str = ""
    app_id: Optional[str] = None
    skipped: bool = False
    message: str = ""
    warnings: List[str] = field(default_factory=list)
    duration: float = 0.0

    @classmethod
    def failed(cls, folder: str, label: str, message: str, **kwargs) -> "PublishResult":
        return cls(folder=folder, label=label, success=False, message=message, **kwargs)
