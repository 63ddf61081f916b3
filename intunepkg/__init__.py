"""
intunepkg - macOS 软件标签打包与 Intune 发布流水线

Turns label definitions into signed, encrypted packages and publishes them to Intune.
"""

__version__ = "0.1.0"

from .config.schema import PipelineConfig, DeploymentDescriptor
from .pipeline.publish_pipeline import PublishPipeline, PublishResult

__all__ = [
    "PipelineConfig",
    "DeploymentDescriptor",
    "PublishPipeline",
    "PublishResult",
    "__version__",
]
