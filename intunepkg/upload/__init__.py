"""
内容上传模块

加密、分块上传、提交轮询与上传会话。
"""

from .encryptor import (
    ContentEncryptor,
    EncryptedContent,
    EncryptionError,
    FileEncryptionInfo,
    decrypt_envelope,
)
from .poller import CommitPoller, Pending, PollFailed, PollSuccess, PollTimedOut, poll
from .session import InvalidTransitionError, UploadSession, UploadState
from .uploader import ChunkedUploader, UploadError, block_id, block_list_xml

__all__ = [
    "ContentEncryptor",
    "EncryptedContent",
    "EncryptionError",
    "FileEncryptionInfo",
    "decrypt_envelope",
    "CommitPoller",
    "Pending",
    "PollFailed",
    "PollSuccess",
    "PollTimedOut",
    "poll",
    "InvalidTransitionError",
    "UploadSession",
    "UploadState",
    "ChunkedUploader",
    "UploadError",
    "block_id",
    "block_list_xml",
]
