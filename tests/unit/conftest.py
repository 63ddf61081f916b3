"""
单元测试公共夹具
"""

import plistlib
from pathlib import Path

import pytest

from intunepkg.config.schema import DeploymentDescriptor, PipelineConfig


def descriptor_data(**overrides):
    """最小可用的部署描述字段"""
    data = {
        "label": "firefox",
        "tracking_id": "3F2A",
        "display_name": "Firefox",
        "bundle_id_expected": "org.mozilla.firefox",
        "version_expected": "120.0",
        "download_type": "dmg",
        "download_url": "https://example.com/firefox.dmg",
        "expected_team_id": "43AQ936H96",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_descriptor():
    """部署描述工厂"""
    def factory(**overrides) -> DeploymentDescriptor:
        return DeploymentDescriptor.model_validate(descriptor_data(**overrides))
    return factory


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    """指向临时目录的流水线配置，所有等待时间为 0"""
    return PipelineConfig.model_validate({
        "paths": {
            "cache_root": str(tmp_path / "cache"),
            "managed_titles_root": str(tmp_path / "managed"),
        },
        "upload": {
            "chunk_size": 64,
            "block_backoff_sec": 0,
            "storage_uri_poll_interval_sec": 0,
            "commit_settle_sec": 0,
            "commit_poll_interval_sec": 0,
            "visibility_poll_interval_sec": 0,
        },
        "download": {"base_retry_delay_sec": 0},
        "lock": {"timeout_sec": 1},
    })


@pytest.fixture
def make_app():
    """在磁盘上生成最小的 .app 包（只有 Info.plist 和可执行文件）"""
    def factory(parent: Path, name: str = "Firefox", bundle_id: str = "org.mozilla.firefox",
                version: str = "120.0", executable: str = "firefox") -> Path:
        app = parent / f"{name}.app"
        macos = app / "Contents" / "MacOS"
        macos.mkdir(parents=True)
        info = {
            "CFBundleIdentifier": bundle_id,
            "CFBundleShortVersionString": version,
            "CFBundleName": name,
        }
        if executable:
            info["CFBundleExecutable"] = executable
            (macos / executable).write_bytes(b"\xcf\xfa\xed\xfe")
        with open(app / "Contents" / "Info.plist", "wb") as f:
            plistlib.dump(info, f)
        return app
    return factory
