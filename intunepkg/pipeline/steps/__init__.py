"""发布步骤"""

from .assign import AssignStep
from .check_cache import CheckCacheStep
from .check_intune import CheckIntuneVersionStep, RecheckIntuneVersionStep
from .cleanup import CleanupStep
from .commit import AwaitCommitStep, AwaitVisibilityStep, CommitStep, SetCommittedVersionStep
from .download import DownloadStep
from .encrypt import EncryptStep
from .notify import NotifyStep, build_report
from .package import PackageStep
from .publish_step import PublishStep
from .reconcile import ReconcileStep
from .record import MARKER_FILE_NAME, RecordUploadCountStep, write_upload_marker
from .remote_app import CreateAppStep, OpenContentVersionStep, RegisterFileStep
from .transfer import AwaitStorageURIStep, UploadChunksStep

__all__ = [
    "AssignStep",
    "CheckCacheStep",
    "CheckIntuneVersionStep",
    "RecheckIntuneVersionStep",
    "CleanupStep",
    "AwaitCommitStep",
    "AwaitVisibilityStep",
    "CommitStep",
    "SetCommittedVersionStep",
    "DownloadStep",
    "EncryptStep",
    "NotifyStep",
    "build_report",
    "PackageStep",
    "PublishStep",
    "ReconcileStep",
    "MARKER_FILE_NAME",
    "RecordUploadCountStep",
    "write_upload_marker",
    "CreateAppStep",
    "OpenContentVersionStep",
    "RegisterFileStep",
    "AwaitStorageURIStep",
    "UploadChunksStep",
]
