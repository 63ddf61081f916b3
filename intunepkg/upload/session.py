"""
上传会话

记录一次内容上传在远端分配的各个 ID、存储地址、块 ID 列表与状态。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class UploadState(str, Enum):
    """上传会话状态"""
    CREATED = "created"
    UPLOADING = "uploading"
    UPLOAD_FAILED = "upload-failed"
    COMMITTING = "committing"
    COMMITTED_SUCCESS = "committed-success"
    COMMITTED_FAILED = "committed-failed"
    TIMED_OUT = "timed-out"

    @property
    def is_terminal(self) -> bool:
        return self in (
            UploadState.UPLOAD_FAILED,
            UploadState.COMMITTED_SUCCESS,
            UploadState.COMMITTED_FAILED,
            UploadState.TIMED_OUT,
        )


_TRANSITIONS = {
    UploadState.CREATED: {UploadState.UPLOADING, UploadState.UPLOAD_FAILED, UploadState.TIMED_OUT},
    UploadState.UPLOADING: {UploadState.COMMITTING, UploadState.UPLOAD_FAILED},
    UploadState.COMMITTING: {
        UploadState.COMMITTED_SUCCESS,
        UploadState.COMMITTED_FAILED,
        UploadState.TIMED_OUT,
    },
}


class InvalidTransitionError(Exception):
    """非法的状态转换"""
    pass


@dataclass
class UploadSession:
    """上传会话，内容版本打开时创建"""
    app_id: str
    app_type: str
    content_version_id: str
    file_id: Optional[str] = None
    storage_uri: Optional[str] = None
    block_ids: List[str] = field(default_factory=list)
    state: UploadState = UploadState.CREATED
    failure_reason: Optional[str] = None

    def transition(self, new_state: UploadState, reason: Optional[str] = None) -> None:
        """转换状态，终态不可再变"""
        allowed = _TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise InvalidTransitionError(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        if reason:
            self.failure_reason = reason

    @property
    def succeeded(self) -> bool:
        return self.state == UploadState.COMMITTED_SUCCESS
