"""
配置 Schema 定义

使用 Pydantic 定义流水线配置（YAML）与标签部署描述模型。
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

GRAPH_BETA_URL = "https://graph.microsoft.com/beta/deviceAppManagement/mobileApps"
DEFAULT_CHUNK_SIZE = 6 * 1024 * 1024


class DeploymentKind(str, Enum):
    """部署类型枚举（兼容 0/1/2 整数写法）"""
    DMG = "dmg"
    PKG = "pkg"
    LOB = "lob"

    @property
    def graph_app_type(self) -> str:
        """Graph 中对应的应用类型"""
        return {
            DeploymentKind.DMG: "macOSDmgApp",
            DeploymentKind.PKG: "macOSPkgApp",
            DeploymentKind.LOB: "macOSLobApp",
        }[self]

    @property
    def artifact_suffix(self) -> str:
        return "dmg" if self is DeploymentKind.DMG else "pkg"


class Architecture(str, Enum):
    """目标架构枚举"""
    ARM64 = "arm64"
    X86_64 = "x86_64"
    UNIVERSAL = "universal"


class DownloadType(str, Enum):
    """下载容器类型枚举"""
    PKG = "pkg"
    PKG_IN_ZIP = "pkginzip"
    PKG_IN_DMG = "pkgindmg"
    PKG_IN_DMG_IN_ZIP = "pkgindmginzip"
    ZIP = "zip"
    TBZ = "tbz"
    DMG = "dmg"
    APP_IN_DMG_IN_ZIP = "appindmginzip"

    @property
    def is_installer(self) -> bool:
        """载荷是否为 .pkg 安装包（否则为 .app）"""
        return self.value.startswith("pkg")


class AssignmentIntent(str, Enum):
    """分组分配意图"""
    REQUIRED = "required"
    AVAILABLE = "available"
    UNINSTALL = "uninstall"


# ---------------------------------------------------------------------------
# 流水线配置
# ---------------------------------------------------------------------------


class ConfigModel(BaseModel):
    """配置元信息模型"""
    version: int = Field(1, description="配置 schema 版本", ge=1)

    @field_validator("version")
    @classmethod
    def validate_config_version(cls, v: int) -> int:
        supported = [1]
        if v not in supported:
            raise ValueError(f"不支持的配置版本 {v}，支持的版本: {supported}")
        return v


class PathsModel(BaseModel):
    """路径配置模型"""
    cache_root: Path = Field(..., description="缓存根目录")
    managed_titles_root: Path = Field(..., description="受管标签目录（每个子目录为 label_trackingid）")
    verify_cache_owner: bool = Field(
        False,
        description="缓存命中时要求文件属主为当前用户，否则删除该缓存项",
    )


class GraphModel(BaseModel):
    """Graph API 配置模型"""
    base_url: str = Field(GRAPH_BETA_URL, description="mobileApps 端点")
    token_env: str = Field("INTUNEPKG_GRAPH_TOKEN", description="存放访问令牌的环境变量名", min_length=1)
    timeout_sec: float = Field(60.0, description="请求超时（秒）", gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("base_url 必须是 http(s) 地址")
        return v.rstrip("/")


class UploadModel(BaseModel):
    """分块上传与轮询配置模型"""
    chunk_size: int = Field(DEFAULT_CHUNK_SIZE, description="分块大小（字节）", ge=1)
    block_attempts: int = Field(3, description="单块最大尝试次数", ge=1, le=10)
    block_backoff_sec: float = Field(0.5, description="线性退避步长（秒）", ge=0)
    storage_uri_poll_interval_sec: float = Field(5.0, ge=0)
    storage_uri_poll_attempts: int = Field(10, ge=1)
    commit_settle_sec: float = Field(10.0, description="提交前等待（秒）", ge=0)
    commit_poll_interval_sec: float = Field(5.0, ge=0)
    commit_poll_attempts: int = Field(20, ge=1)
    visibility_poll_interval_sec: float = Field(3.0, ge=0)
    visibility_poll_attempts: int = Field(12, ge=1)
    timeout_sec: float = Field(300.0, description="单次块上传超时（秒）", gt=0)


class DownloadModel(BaseModel):
    """下载配置模型"""
    max_retries: int = Field(3, description="最大重试次数", ge=0, le=10)
    base_retry_delay_sec: float = Field(2.0, description="指数退避基数（秒）", ge=0)
    timeout_sec: float = Field(600.0, gt=0)


class RetentionModel(BaseModel):
    """版本保留配置模型"""
    versions_to_keep: int = Field(2, description="每个标签保留的版本数", ge=1, le=50)


class LockModel(BaseModel):
    """标签锁配置模型"""
    timeout_sec: float = Field(30.0, description="获取标签锁的超时（秒），-1 表示无限等待")


class NotificationModel(BaseModel):
    """通知配置模型"""
    enabled: bool = Field(False, description="是否发送 Teams 通知")
    teams_webhook_url: Optional[str] = Field(None, description="Teams Webhook 地址")
    on_success: bool = Field(True)
    on_failure: bool = Field(True)

    @model_validator(mode="after")
    def validate_webhook(self) -> "NotificationModel":
        if self.enabled and not self.teams_webhook_url:
            raise ValueError("启用通知时必须提供 teams_webhook_url")
        return self


class PipelineConfig(BaseModel):
    """流水线主配置模型

    整个配置文件的根模型，在构造流水线时显式传入。
    """

    config: ConfigModel = Field(default_factory=ConfigModel, description="配置元信息")
    paths: PathsModel = Field(..., description="路径配置")

    graph: GraphModel = Field(default_factory=GraphModel)
    upload: UploadModel = Field(default_factory=UploadModel)
    download: DownloadModel = Field(default_factory=DownloadModel)
    retention: RetentionModel = Field(default_factory=RetentionModel)
    lock: LockModel = Field(default_factory=LockModel)
    notifications: NotificationModel = Field(default_factory=NotificationModel)

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
        "str_strip_whitespace": True,
    }

    def to_dict(self) -> Dict[str, Any]:
        """转换为可序列化字典"""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        return cls.model_validate(data)


# ---------------------------------------------------------------------------
# 标签部署描述
# ---------------------------------------------------------------------------


class CategoryRef(BaseModel):
    """应用分类引用"""
    id: str = Field(..., min_length=1)
    display_name: Optional[str] = None


class GroupAssignment(BaseModel):
    """分组分配"""
    group_id: str = Field(..., min_length=1)
    intent: AssignmentIntent = AssignmentIntent.REQUIRED
    display_name: Optional[str] = None


class DeploymentDescriptor(BaseModel):
    """单个标签的部署描述

    每次运行从标签配置构造一次，流水线在发现实际 bundle id、版本和路径时就地更新。
    """

    label: str = Field(..., min_length=1, description="标签名")
    tracking_id: str = Field(..., min_length=1, description="稳定追踪 ID（写入应用 notes）")
    display_name: str = Field(..., min_length=1)

    bundle_id_expected: str = Field(..., min_length=1)
    bundle_id_actual: str = ""
    version_expected: str = ""
    version_actual: str = ""

    deployment_kind: DeploymentKind = DeploymentKind.LOB
    architecture: Architecture = Architecture.UNIVERSAL
    dual_arch: bool = False
    download_type: DownloadType
    download_url: str = Field(..., min_length=1)
    download_url_x86: Optional[str] = None

    local_path: str = ""
    local_path_x86: str = ""

    expected_team_id: str = Field(..., min_length=1)
    developer: Optional[str] = None
    publisher: Optional[str] = None
    owner: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    information_url: Optional[str] = None
    privacy_url: Optional[str] = None
    minimum_os: str = Field("v11_0", description="Graph minimumSupportedOperatingSystem 键")
    ignore_version_detection: bool = False

    preinstall_script: Optional[str] = None
    postinstall_script: Optional[str] = None

    categories: List[CategoryRef] = Field(default_factory=list)
    group_assignments: List[GroupAssignment] = Field(default_factory=list)

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
        "str_strip_whitespace": True,
    }

    @field_validator("deployment_kind", mode="before")
    @classmethod
    def coerce_deployment_kind(cls, v: Union[int, str, DeploymentKind]) -> Union[str, DeploymentKind]:
        """兼容 0=DMG、1=PKG、2=LOB 的整数写法"""
        if isinstance(v, bool):
            raise ValueError("deployment_kind 不能是布尔值")
        if isinstance(v, int):
            mapping = {0: DeploymentKind.DMG, 1: DeploymentKind.PKG, 2: DeploymentKind.LOB}
            if v not in mapping:
                raise ValueError("deployment_kind 整数值必须是 0、1 或 2")
            return mapping[v]
        return v

    @field_validator("minimum_os")
    @classmethod
    def validate_minimum_os(cls, v: str) -> str:
        if not re.match(r"^v\d+_\d+$", v):
            raise ValueError("minimum_os 格式应为 v11_0、v14_0 等")
        return v

    @model_validator(mode="after")
    def validate_dual_arch(self) -> "DeploymentDescriptor":
        """双架构构建需要第二个下载地址，且载荷必须是 .app"""
        if self.is_dual_arch_build:
            if not self.download_url_x86:
                raise ValueError("dual_arch 需要 download_url_x86")
            if self.download_type.is_installer:
                raise ValueError("dual_arch 只支持 .app 类下载类型")
        return self

    @property
    def is_dual_arch_build(self) -> bool:
        """是否需要下载两个架构的载荷并合并为通用安装包"""
        return (
            self.dual_arch
            and self.architecture == Architecture.UNIVERSAL
            and self.deployment_kind != DeploymentKind.DMG
        )

    def effective_arch_suffix(self) -> str:
        """文件名中的架构标签"""
        if self.architecture == Architecture.ARM64:
            return "arm64" if self.dual_arch else "universal"
        return self.architecture.value

    def final_filename(self, version: Optional[str] = None) -> str:
        """计算缓存/上传文件名，版本为空时返回空串"""
        version = self.version_expected if version is None else version
        if not version:
            return ""
        suffix = self.deployment_kind.artifact_suffix
        return f"{self.display_name}-{version}-{self.effective_arch_suffix()}.{suffix}"

    def effective_version(self) -> str:
        """实际版本优先，否则为期望版本"""
        return self.version_actual or self.version_expected

    def app_display_name(self) -> str:
        """Intune 中显示的名称：名称 版本 架构"""
        return f"{self.display_name} {self.effective_version()} {self.effective_arch_suffix()}".strip()

    def tracking_note(self) -> str:
        """写入 notes 的追踪标记，远端按 endswith 过滤"""
        prefix = f"{self.notes}\n\n" if self.notes else ""
        return f"{prefix}intunepkg ID: {self.tracking_id}"
