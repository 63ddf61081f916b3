"""
下载模块

使用 httpx 流式下载到本次运行的临时目录，tenacity 负责指数退避重试。
"""

import re
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..utils.logging import info, success, warning, LogStage
from ..utils.paths import format_size

_FILENAME_STAR_RE = re.compile(r"filename\*\s*=\s*[^']*'[^']*'([^;]+)", re.IGNORECASE)
_FILENAME_RE = re.compile(r'filename\s*=\s*"?([^";]+)"?', re.IGNORECASE)


class DownloadError(Exception):
    """下载错误"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class _TransientDownloadError(DownloadError):
    """可重试的下载错误（网络错误或 5xx/429）"""
    pass


def filename_from_response(response: httpx.Response, fallback: str) -> str:
    """从 Content-Disposition 或最终 URL 中取文件名"""
    disposition = response.headers.get("content-disposition", "")
    match = _FILENAME_STAR_RE.search(disposition) or _FILENAME_RE.search(disposition)
    if match:
        name = Path(unquote(match.group(1).strip())).name
        if name:
            return name

    name = Path(unquote(urlparse(str(response.url)).path)).name
    if name and "." in name:
        return name

    return fallback


class Downloader:
    """文件下载器"""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        max_retries: int = 3,
        base_delay: float = 2.0,
        timeout: float = 600.0,
    ):
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout)
        self.max_retries = max_retries
        self.base_delay = base_delay

    def close(self) -> None:
        self._client.close()

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, min=0, max=60),
            retry=retry_if_exception_type(_TransientDownloadError),
            reraise=False,
        )

    def download(self, url: str, destination_dir: Path, fallback_name: str) -> Path:
        """下载 URL 到目标目录

        Args:
            url: 下载地址
            destination_dir: 本次运行的临时目录
            fallback_name: 无法推断文件名时使用的名称

        Returns:
            Path: 下载文件路径

        Raises:
            DownloadError: 地址非法、非 2xx 响应或重试耗尽
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise DownloadError(f"无效的下载地址: {url}")

        info(f"开始下载 {url}", stage=LogStage.DOWNLOAD)

        try:
            for attempt in self._retrying():
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        warning(f"下载重试 ({number - 1}/{self.max_retries})", stage=LogStage.DOWNLOAD)
                    path = self._fetch(url, destination_dir, fallback_name)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise DownloadError(f"下载失败（已重试 {self.max_retries} 次）: {last}",
                                getattr(last, "status_code", None)) from last

        success(f"下载完成: {path.name} ({format_size(path.stat().st_size)})", stage=LogStage.DOWNLOAD)
        return path

    def _fetch(self, url: str, destination_dir: Path, fallback_name: str) -> Path:
        try:
            with self._client.stream("GET", url) as response:
                if response.status_code == 429 or response.status_code >= 500:
                    raise _TransientDownloadError(
                        f"服务器返回 {response.status_code}", response.status_code
                    )
                if not 200 <= response.status_code < 300:
                    raise DownloadError(f"服务器返回 {response.status_code}", response.status_code)

                destination = destination_dir / filename_from_response(response, fallback_name)
                partial = destination.with_name(destination.name + ".part")
                with open(partial, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
                partial.replace(destination)
                return destination
        except httpx.TransportError as e:
            raise _TransientDownloadError(f"网络错误: {e}") from e
