"""
加密步骤
"""

from ...upload.encryptor import EncryptionError
from ...utils.logging import LogStage
from ..publish_context import PublishContext, PublishError
from .publish_step import PublishStep


class EncryptStep(PublishStep):
    """加密产物，生成封包与加密描述"""

    def __init__(self):
        super().__init__("encrypt", "加密内容", LogStage.ENCRYPT)

    def get_progress_range(self) -> tuple[int, int]:
        return (42, 48)

    def execute(self, context: PublishContext) -> None:
        if context.artifact_path is None:
            raise PublishError("没有可上传的产物")
        try:
            context.encrypted = context.services.encryptor.encrypt_file(context.artifact_path)
        except EncryptionError as e:
            raise PublishError(str(e)) from e
