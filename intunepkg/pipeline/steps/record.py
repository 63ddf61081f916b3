"""
上传计数标记步骤

在受管标签目录写入 .uploaded，内容为远端剩余版本数；数量 <= 0 时删除该文件。
"""

from pathlib import Path

from ...utils.logging import debug, warning, LogStage
from ..publish_context import PublishContext
from .publish_step import PublishStep

MARKER_FILE_NAME = ".uploaded"


def write_upload_marker(folder_path: Path, count: int) -> None:
    marker = folder_path / MARKER_FILE_NAME
    if count > 0:
        marker.write_text(str(count), encoding="utf-8")
    elif marker.exists():
        marker.unlink()


class RecordUploadCountStep(PublishStep):
    """记录远端剩余版本数"""

    def __init__(self):
        super().__init__("record_upload_count", "记录上传计数", LogStage.DONE)

    def get_progress_range(self) -> tuple[int, int]:
        return (97, 98)

    def execute(self, context: PublishContext) -> None:
        count = context.remaining_versions
        if count is None:
            count = len(context.remote_records)
        try:
            write_upload_marker(context.folder_path, count)
            debug(f"{MARKER_FILE_NAME} = {count}", stage=LogStage.DONE)
        except OSError as e:
            warning(f"写入 {MARKER_FILE_NAME} 失败: {e}", stage=LogStage.DONE)
