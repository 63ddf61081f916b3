"""
分块上传模块

把加密封包切成固定大小的块，逐块 PUT 到 Azure 存储 SAS 地址，最后提交块清单。
块 ID 为 base64("block-%04d" % i)，清单按上传顺序列出。
"""

import base64
import time
from typing import Any, Callable, List, Optional

import httpx
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ..config.schema import DEFAULT_CHUNK_SIZE
from ..utils.logging import debug, info, success, warning, LogStage
from ..utils.paths import format_size

BLOB_TYPE_HEADER = "x-ms-blob-type"
BLOB_TYPE = "BlockBlob"


class UploadError(Exception):
    """上传错误"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class _BlockAttemptError(UploadError):
    """单次块上传失败，可重试"""
    pass


def block_id(index: int) -> str:
    """第 index 块的块 ID"""
    return base64.b64encode(f"block-{index:04d}".encode("ascii")).decode("ascii")


def block_list_xml(block_ids: List[str]) -> str:
    """块清单 XML，顺序即上传顺序"""
    latest = "".join(f"<Latest>{bid}</Latest>" for bid in block_ids)
    return f'<?xml version="1.0" encoding="utf-8"?><BlockList>{latest}</BlockList>'


class ChunkedUploader:
    """Azure 块 Blob 分块上传器"""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_attempts: int = 3,
        backoff: float = 0.5,
        timeout: float = 300.0,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size 必须 >= 1")
        self._client = client or httpx.Client(timeout=timeout)
        self.chunk_size = chunk_size
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.sleep = sleep

    @classmethod
    def from_config(cls, upload_config, client: Optional[httpx.Client] = None,
                    sleep: Callable[[float], Any] = time.sleep) -> "ChunkedUploader":
        return cls(
            client=client,
            chunk_size=upload_config.chunk_size,
            max_attempts=upload_config.block_attempts,
            backoff=upload_config.block_backoff_sec,
            timeout=upload_config.timeout_sec,
            sleep=sleep,
        )

    def close(self) -> None:
        self._client.close()

    def upload(self, storage_uri: str, envelope: bytes) -> List[str]:
        """上传全部块并提交清单

        Returns:
            List[str]: 按顺序提交的块 ID

        Raises:
            UploadError: 某块重试耗尽或清单提交未返回 201
        """
        total = max(1, -(-len(envelope) // self.chunk_size))
        info(f"分块上传 {format_size(len(envelope))}，共 {total} 块", stage=LogStage.UPLOAD)

        ids: List[str] = []
        for index in range(total):
            chunk = envelope[index * self.chunk_size:(index + 1) * self.chunk_size]
            bid = block_id(index)
            self.put_block(storage_uri, bid, chunk)
            ids.append(bid)
            debug(f"块 {index + 1}/{total} 已上传", stage=LogStage.UPLOAD)

        self.commit_block_list(storage_uri, ids)
        success(f"上传完成，共 {len(ids)} 块", stage=LogStage.UPLOAD)
        return ids

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff, increment=self.backoff),
            retry=retry_if_exception_type(_BlockAttemptError),
            sleep=self.sleep,
            reraise=False,
        )

    def put_block(self, storage_uri: str, bid: str, data: bytes) -> None:
        """上传单块，非 2xx 或网络错误按线性退避重试"""
        url = f"{storage_uri}&comp=block&blockid={bid}"
        try:
            for attempt in self._retrying():
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        warning(f"块 {bid} 重试 ({number}/{self.max_attempts})", stage=LogStage.UPLOAD)
                    self._put_block_once(url, data)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise UploadError(
                f"块 {bid} 上传失败（{self.max_attempts} 次尝试）: {last}",
                getattr(last, "status_code", None),
            ) from last

    def _put_block_once(self, url: str, data: bytes) -> None:
        try:
            response = self._client.put(url, content=data, headers={BLOB_TYPE_HEADER: BLOB_TYPE})
        except httpx.TransportError as e:
            raise _BlockAttemptError(f"网络错误: {e}") from e
        if not 200 <= response.status_code < 300:
            raise _BlockAttemptError(f"存储返回 {response.status_code}", response.status_code)

    def commit_block_list(self, storage_uri: str, ids: List[str]) -> None:
        """提交块清单，必须返回 201"""
        url = f"{storage_uri}&comp=blocklist"
        try:
            response = self._client.put(
                url,
                content=block_list_xml(ids).encode("utf-8"),
                headers={"Content-Type": "application/xml"},
            )
        except httpx.TransportError as e:
            raise UploadError(f"提交块清单失败: {e}") from e

        if response.status_code != 201:
            raise UploadError(
                f"提交块清单失败: HTTP {response.status_code} {response.text[:200]}",
                response.status_code,
            )
