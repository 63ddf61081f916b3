"""配置和 Schema 模块

提供流水线 YAML 配置与标签部署描述的加载、验证和保存功能。
"""

from .schema import (
    Architecture,
    DeploymentDescriptor,
    DeploymentKind,
    DownloadType,
    PipelineConfig,
)
from .loader import (
    ConfigError,
    ConfigLoader,
    ConfigValidationError,
    LabelLoader,
    config_loader,
    load_config,
    save_config,
    validate_config,
    validate_config_with_result,
)

__all__ = [
    "Architecture",
    "DeploymentDescriptor",
    "DeploymentKind",
    "DownloadType",
    "PipelineConfig",
    "ConfigError",
    "ConfigLoader",
    "ConfigValidationError",
    "LabelLoader",
    "config_loader",
    "load_config",
    "save_config",
    "validate_config",
    "validate_config_with_result",
]
