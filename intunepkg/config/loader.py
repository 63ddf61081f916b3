"""
配置加载器

负责从 YAML 文件加载流水线配置与标签部署描述，并进行验证。
"""

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .schema import DeploymentDescriptor, PipelineConfig

LABEL_FILE_NAME = "label.yaml"


class ConfigError(Exception):
    """配置错误基类"""
    pass


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def __init__(self, message: str, errors: List[Dict[str, Any]]):
        super().__init__(message)
        self.errors = errors

    def format_errors(self) -> str:
        """格式化错误信息为人类可读的格式"""
        formatted = []
        for error in self.errors:
            loc = " -> ".join(str(item) for item in error.get("loc", []))
            msg = error.get("msg", "未知错误")
            input_val = error.get("input", "")

            if loc:
                formatted.append(f"字段 '{loc}': {msg}")
                if input_val not in ("", None) and not isinstance(input_val, dict):
                    formatted.append(f"  输入值: {input_val}")
            else:
                formatted.append(f"根级别: {msg}")

        return "\n".join(formatted)

    def format_errors_json(self, source: Optional[str] = None) -> str:
        """格式化错误信息为 JSON 格式

        Args:
            source: 出错的文件或标签目录，写入 "file" 字段
        """
        data: Dict[str, Any] = {"message": str(self), "errors": self.errors, "error_count": len(self.errors)}
        if source:
            data["file"] = source
        return json.dumps(data, ensure_ascii=False, indent=2, default=str)


@dataclass
class ValidationResult:
    """配置验证结果"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    config: Optional[PipelineConfig] = None


def _plain(data: Any) -> Any:
    """将 ruamel 的 CommentedMap/Seq 转为普通 dict/list"""
    if isinstance(data, dict):
        return {str(k): _plain(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_plain(v) for v in data]
    return data


class ConfigLoader:
    """配置加载器"""

    def __init__(self):
        self.yaml = YAML(typ="safe")
        self.yaml.width = 4096

    def read_yaml(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigError(f"配置文件不存在: {path}")

        if not path.is_file():
            raise ConfigError(f"配置路径不是文件: {path}")

        if path.suffix.lower() not in [".yaml", ".yml"]:
            raise ConfigError(f"配置文件必须是 .yaml 或 .yml 格式: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw_data = self.yaml.load(f)
        except YAMLError as e:
            raise ConfigError(f"YAML 解析错误: {e}") from e
        except OSError as e:
            raise ConfigError(f"文件读取错误: {e}") from e

        if raw_data is None:
            raise ConfigError(f"配置文件为空: {path}")

        if not isinstance(raw_data, dict):
            raise ConfigError("配置文件根级别必须是对象/字典格式")

        return _plain(raw_data)

    def load_from_file(self, config_path: Union[str, Path]) -> PipelineConfig:
        """从文件加载流水线配置

        Raises:
            ConfigError: 配置加载或验证错误
        """
        config_path = Path(config_path)
        raw_data = self.read_yaml(config_path)
        return self.load_from_dict(raw_data, base_path=config_path.parent)

    def load_from_dict(self, data: Dict[str, Any], base_path: Optional[Path] = None) -> PipelineConfig:
        """从字典加载流水线配置

        Args:
            data: 配置数据字典
            base_path: 相对路径的基准路径
        """
        if base_path:
            data = copy.deepcopy(data)
            self._resolve_relative_paths(data, base_path)

        try:
            return PipelineConfig.from_dict(data)
        except ValidationError as e:
            raise ConfigValidationError("配置验证失败", e.errors()) from e

    def save_to_file(self, config: PipelineConfig, output_path: Union[str, Path]) -> None:
        """保存配置到文件"""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        writer = YAML()
        writer.default_flow_style = False
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                writer.dump(config.to_dict(), f)
        except OSError as e:
            raise ConfigError(f"保存配置文件失败: {e}") from e

    def validate_file(self, config_path: Union[str, Path]) -> List[Dict[str, Any]]:
        """验证配置文件并返回错误列表，空列表表示验证通过"""
        try:
            self.load_from_file(config_path)
            return []
        except ConfigValidationError as e:
            return e.errors
        except ConfigError as e:
            return [{"loc": [], "msg": str(e), "type": "config_error"}]

    def _resolve_relative_paths(self, data: Dict[str, Any], base_path: Path) -> None:
        """解析 paths 段中的相对路径（相对于配置文件所在目录）"""
        paths = data.get("paths")
        if not isinstance(paths, dict):
            return

        for key in ("cache_root", "managed_titles_root"):
            value = paths.get(key)
            if isinstance(value, str) and value and not Path(value).expanduser().is_absolute():
                paths[key] = str((base_path / value).resolve())
            elif isinstance(value, str) and value:
                paths[key] = str(Path(value).expanduser())


class LabelLoader:
    """标签部署描述加载器

    受管标签目录结构为 ``<managed_titles_root>/<label>_<tracking_id>/label.yaml``。
    描述中未给出 label 或 tracking_id 时，从目录名推导。
    """

    def __init__(self, managed_titles_root: Union[str, Path], config_loader: Optional[ConfigLoader] = None):
        self.managed_titles_root = Path(managed_titles_root)
        self._loader = config_loader or ConfigLoader()

    @staticmethod
    def split_folder_name(folder_name: str) -> tuple:
        """拆分 label_trackingid 目录名"""
        label, _, tracking_id = folder_name.partition("_")
        return label, tracking_id

    def folder_path(self, folder_name: str) -> Path:
        return self.managed_titles_root / folder_name

    def load(self, folder_name: str) -> DeploymentDescriptor:
        """加载指定目录的部署描述

        Raises:
            ConfigError: 文件缺失或解析失败
            ConfigValidationError: 字段验证失败（包括缺少 tracking id）
        """
        label_file = self.folder_path(folder_name) / LABEL_FILE_NAME
        data = self._loader.read_yaml(label_file)

        label, tracking_id = self.split_folder_name(folder_name)
        data.setdefault("label", label)
        if tracking_id:
            data.setdefault("tracking_id", tracking_id)

        try:
            return DeploymentDescriptor.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(f"标签描述验证失败: {folder_name}", e.errors()) from e

    def list_folders(self) -> List[str]:
        """列出所有受管标签目录名（忽略隐藏目录）"""
        if not self.managed_titles_root.is_dir():
            return []
        return sorted(
            p.name for p in self.managed_titles_root.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        )

    def managed_labels(self) -> set:
        """所有受管标签名集合（目录名第一个下划线之前的部分）"""
        return {self.split_folder_name(name)[0] for name in self.list_folders()}


config_loader = ConfigLoader()


def load_config(config_path: Union[str, Path]) -> PipelineConfig:
    """便捷函数：加载配置文件"""
    return config_loader.load_from_file(config_path)


def validate_config(config_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """便捷函数：验证配置文件"""
    return config_loader.validate_file(config_path)


def validate_config_with_result(config_or_path: Union[PipelineConfig, str, Path]) -> ValidationResult:
    """验证配置并返回详细结果"""
    try:
        if isinstance(config_or_path, (str, Path)):
            config = load_config(config_or_path)
        else:
            config = config_or_path
        return ValidationResult(is_valid=True, config=config)

    except ConfigValidationError as e:
        return ValidationResult(is_valid=False, errors=e.format_errors().splitlines())

    except ConfigError as e:
        return ValidationResult(is_valid=False, errors=[f"配置加载失败: {e}"])


def save_config(config: PipelineConfig, output_path: Union[str, Path]) -> None:
    """便捷函数：保存配置文件"""
    config_loader.save_to_file(config, output_path)
