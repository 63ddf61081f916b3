"""
配置系统单元测试

测试流水线配置、部署描述模型和标签目录加载器。
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from intunepkg.config.loader import (
    ConfigError,
    ConfigValidationError,
    LabelLoader,
    load_config,
    save_config,
    validate_config,
    validate_config_with_result,
)
from intunepkg.config.schema import (
    GRAPH_BETA_URL,
    Architecture,
    DeploymentKind,
    DownloadType,
    PipelineConfig,
)

MINIMAL_CONFIG = """\
paths:
  cache_root: cache
  managed_titles_root: managed
"""

LABEL_YAML = """\
display_name: Firefox
bundle_id_expected: org.mozilla.firefox
version_expected: "120.0"
download_type: dmg
download_url: https://example.com/firefox.dmg
expected_team_id: 43AQ936H96
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestPipelineConfig:
    """PipelineConfig 测试"""

    def test_defaults(self, tmp_path):
        """测试默认值"""
        config = PipelineConfig.model_validate({
            "paths": {"cache_root": str(tmp_path), "managed_titles_root": str(tmp_path)}
        })
        assert config.graph.base_url == GRAPH_BETA_URL
        assert config.upload.chunk_size == 6 * 1024 * 1024
        assert config.upload.storage_uri_poll_attempts == 10
        assert config.upload.commit_poll_attempts == 20
        assert config.upload.visibility_poll_attempts == 12
        assert config.retention.versions_to_keep == 2
        assert config.notifications.enabled is False

    def test_extra_fields_forbidden(self, tmp_path):
        """测试未知字段被拒绝"""
        with pytest.raises(ValidationError):
            PipelineConfig.model_validate({
                "paths": {"cache_root": str(tmp_path), "managed_titles_root": str(tmp_path)},
                "unknown": 1,
            })

    def test_notifications_require_webhook(self, tmp_path):
        """测试启用通知时必须提供 webhook"""
        with pytest.raises(ValidationError):
            PipelineConfig.model_validate({
                "paths": {"cache_root": str(tmp_path), "managed_titles_root": str(tmp_path)},
                "notifications": {"enabled": True},
            })

    def test_base_url_validation(self, tmp_path):
        """测试 base_url 必须是 http(s) 且去掉末尾斜杠"""
        paths = {"cache_root": str(tmp_path), "managed_titles_root": str(tmp_path)}
        config = PipelineConfig.model_validate({"paths": paths, "graph": {"base_url": "https://graph.test/apps/"}})
        assert config.graph.base_url == "https://graph.test/apps"

        with pytest.raises(ValidationError):
            PipelineConfig.model_validate({"paths": paths, "graph": {"base_url": "ftp://graph.test"}})

    def test_unsupported_config_version(self, tmp_path):
        """测试不支持的配置版本"""
        with pytest.raises(ValidationError):
            PipelineConfig.model_validate({
                "config": {"version": 2},
                "paths": {"cache_root": str(tmp_path), "managed_titles_root": str(tmp_path)},
            })


class TestConfigLoader:
    """配置文件加载测试"""

    def test_relative_paths_resolved_against_config_dir(self, tmp_path):
        """测试相对路径按配置文件目录解析"""
        config_file = write(tmp_path / "conf" / "config.yaml", MINIMAL_CONFIG)

        config = load_config(config_file)

        assert config.paths.cache_root == (tmp_path / "conf" / "cache").resolve()
        assert config.paths.managed_titles_root == (tmp_path / "conf" / "managed").resolve()

    def test_missing_file(self, tmp_path):
        """测试文件不存在"""
        with pytest.raises(ConfigError, match="不存在"):
            load_config(tmp_path / "missing.yaml")

    def test_wrong_suffix(self, tmp_path):
        """测试非 YAML 扩展名"""
        config_file = write(tmp_path / "config.json", "{}")
        with pytest.raises(ConfigError, match=".yaml"):
            load_config(config_file)

    def test_empty_file(self, tmp_path):
        """测试空文件"""
        config_file = write(tmp_path / "config.yaml", "")
        with pytest.raises(ConfigError, match="为空"):
            load_config(config_file)

    def test_invalid_yaml(self, tmp_path):
        """测试 YAML 语法错误"""
        config_file = write(tmp_path / "config.yaml", "paths: [unclosed\n")
        with pytest.raises(ConfigError, match="YAML"):
            load_config(config_file)

    def test_validation_error_details(self, tmp_path):
        """测试验证错误带有字段位置"""
        config_file = write(tmp_path / "config.yaml", MINIMAL_CONFIG + "retention:\n  versions_to_keep: 0\n")

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(config_file)

        assert any("versions_to_keep" in err["loc"] for err in exc_info.value.errors)
        assert "versions_to_keep" in exc_info.value.format_errors()

    def test_validation_error_json(self):
        """测试 JSON 格式的错误报告"""
        errors = [{"loc": ("retention", "versions_to_keep"), "msg": "必须大于 0", "input": 0}]
        error = ConfigValidationError("配置文件验证失败", errors)

        report = json.loads(error.format_errors_json("config.yaml"))

        assert report["file"] == "config.yaml"
        assert report["error_count"] == 1
        assert report["errors"][0]["loc"] == ["retention", "versions_to_keep"]
        assert "file" not in json.loads(error.format_errors_json())

    def test_validate_config_returns_errors(self, tmp_path):
        """测试 validate_config 返回错误列表而不抛出"""
        good = write(tmp_path / "good.yaml", MINIMAL_CONFIG)
        bad = write(tmp_path / "bad.yaml", "paths: {}\n")

        assert validate_config(good) == []
        assert validate_config(bad)
        assert validate_config(tmp_path / "missing.yaml")[0]["type"] == "config_error"

    def test_validate_config_with_result(self, tmp_path):
        """测试详细验证结果"""
        result = validate_config_with_result(write(tmp_path / "config.yaml", MINIMAL_CONFIG))
        assert result.is_valid
        assert result.config is not None

        result = validate_config_with_result(tmp_path / "missing.yaml")
        assert not result.is_valid
        assert result.errors

    def test_save_and_reload(self, tmp_path):
        """测试保存后可重新加载"""
        config = load_config(write(tmp_path / "config.yaml", MINIMAL_CONFIG))
        config.retention.versions_to_keep = 5

        output = tmp_path / "out" / "saved.yaml"
        save_config(config, output)

        reloaded = load_config(output)
        assert reloaded.retention.versions_to_keep == 5
        assert reloaded.paths.cache_root == config.paths.cache_root


class TestDeploymentDescriptor:
    """DeploymentDescriptor 测试"""

    def test_integer_deployment_kind(self, make_descriptor):
        """测试 0/1/2 整数写法"""
        assert make_descriptor(deployment_kind=0).deployment_kind == DeploymentKind.DMG
        assert make_descriptor(deployment_kind=1).deployment_kind == DeploymentKind.PKG
        assert make_descriptor(deployment_kind=2).deployment_kind == DeploymentKind.LOB

        for invalid in (3, True):
            with pytest.raises(ValidationError):
                make_descriptor(deployment_kind=invalid)

    def test_graph_app_type(self):
        """测试部署类型对应的 Graph 应用类型"""
        assert DeploymentKind.DMG.graph_app_type == "macOSDmgApp"
        assert DeploymentKind.PKG.graph_app_type == "macOSPkgApp"
        assert DeploymentKind.LOB.graph_app_type == "macOSLobApp"

    def test_download_type_is_installer(self):
        """测试下载类型是否为安装包"""
        assert DownloadType.PKG_IN_DMG_IN_ZIP.is_installer
        assert not DownloadType.APP_IN_DMG_IN_ZIP.is_installer
        assert not DownloadType.TBZ.is_installer

    def test_minimum_os_format(self, make_descriptor):
        """测试 minimum_os 格式"""
        with pytest.raises(ValidationError):
            make_descriptor(minimum_os="11.0")

    def test_dual_arch_requires_second_url(self, make_descriptor):
        """测试双架构需要 x86_64 下载地址"""
        with pytest.raises(ValidationError, match="download_url_x86"):
            make_descriptor(dual_arch=True)

    def test_dual_arch_rejects_installer_types(self, make_descriptor):
        """测试双架构只支持 .app 下载"""
        with pytest.raises(ValidationError):
            make_descriptor(
                dual_arch=True,
                download_type="pkg",
                download_url_x86="https://example.com/x86.pkg",
            )

    def test_dual_arch_build_not_for_dmg(self, make_descriptor):
        """测试 DMG 部署不做双架构合并"""
        descriptor = make_descriptor(
            dual_arch=True,
            deployment_kind="dmg",
            download_url_x86="https://example.com/x86.dmg",
        )
        assert not descriptor.is_dual_arch_build

    def test_final_filename(self, make_descriptor):
        """测试产物文件名"""
        descriptor = make_descriptor()
        assert descriptor.final_filename() == "Firefox-120.0-universal.pkg"
        assert descriptor.final_filename("121.0") == "Firefox-121.0-universal.pkg"

        dmg = make_descriptor(deployment_kind="dmg", architecture="x86_64")
        assert dmg.final_filename() == "Firefox-120.0-x86_64.dmg"

        assert make_descriptor(version_expected="").final_filename() == ""

    def test_effective_version_and_display_name(self, make_descriptor):
        """测试实际版本优先"""
        descriptor = make_descriptor()
        assert descriptor.effective_version() == "120.0"

        descriptor.version_actual = "120.1"
        assert descriptor.effective_version() == "120.1"
        assert descriptor.app_display_name() == "Firefox 120.1 universal"

    def test_tracking_note(self, make_descriptor):
        """测试追踪标记位于 notes 末尾"""
        assert make_descriptor().tracking_note() == "intunepkg ID: 3F2A"
        note = make_descriptor(notes="由平台组维护").tracking_note()
        assert note.startswith("由平台组维护")
        assert note.endswith("3F2A")

    def test_architecture_enum(self, make_descriptor):
        """测试默认架构"""
        assert make_descriptor().architecture == Architecture.UNIVERSAL


class TestLabelLoader:
    """LabelLoader 测试"""

    def test_load_derives_label_and_tracking_id(self, tmp_path):
        """测试从目录名推导标签和追踪 ID"""
        write(tmp_path / "firefox_3F2A" / "label.yaml", LABEL_YAML)
        loader = LabelLoader(tmp_path)

        descriptor = loader.load("firefox_3F2A")

        assert descriptor.label == "firefox"
        assert descriptor.tracking_id == "3F2A"
        assert descriptor.version_expected == "120.0"

    def test_explicit_values_win(self, tmp_path):
        """测试描述中的值优先于目录名"""
        write(tmp_path / "firefox_3F2A" / "label.yaml", LABEL_YAML + "tracking_id: ABCD\n")
        descriptor = LabelLoader(tmp_path).load("firefox_3F2A")
        assert descriptor.tracking_id == "ABCD"

    def test_missing_tracking_id(self, tmp_path):
        """测试缺少追踪 ID"""
        write(tmp_path / "firefox" / "label.yaml", LABEL_YAML)

        with pytest.raises(ConfigValidationError) as exc_info:
            LabelLoader(tmp_path).load("firefox")

        assert any("tracking_id" in err["loc"] for err in exc_info.value.errors)

    def test_missing_label_file(self, tmp_path):
        """测试缺少 label.yaml"""
        (tmp_path / "firefox_3F2A").mkdir()
        with pytest.raises(ConfigError):
            LabelLoader(tmp_path).load("firefox_3F2A")

    def test_list_folders_and_managed_labels(self, tmp_path):
        """测试列出受管目录（忽略隐藏目录和文件）"""
        for name in ("firefox_3F2A", "chrome_91BC", ".git"):
            (tmp_path / name).mkdir()
        (tmp_path / "README.md").write_text("x", encoding="utf-8")

        loader = LabelLoader(tmp_path)

        assert loader.list_folders() == ["chrome_91BC", "firefox_3F2A"]
        assert loader.managed_labels() == {"chrome", "firefox"}

    def test_list_folders_missing_root(self, tmp_path):
        """测试根目录不存在"""
        assert LabelLoader(tmp_path / "missing").list_folders() == []

    def test_split_folder_name(self):
        """测试目录名拆分"""
        assert LabelLoader.split_folder_name("firefox_3F2A") == ("firefox", "3F2A")
        assert LabelLoader.split_folder_name("vs_code_9A") == ("vs", "code_9A")
        assert LabelLoader.split_folder_name("firefox") == ("firefox", "")
