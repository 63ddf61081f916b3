"""
Graph API 模块
"""

from .client import GraphClient, GraphError, tracking_filter
from .records import (
    AppMetadata,
    AssignmentRecord,
    ContentFileRequest,
    ContentFileStatus,
    VersionRecord,
)

__all__ = [
    "GraphClient",
    "GraphError",
    "tracking_filter",
    "AppMetadata",
    "AssignmentRecord",
    "ContentFileRequest",
    "ContentFileStatus",
    "VersionRecord",
]
