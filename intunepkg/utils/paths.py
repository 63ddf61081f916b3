"""
路径工具

提供路径处理、目录创建、文件复制与删除等工具函数。
"""

import shutil
from pathlib import Path
from typing import Union


def ensure_directory(path: Union[str, Path]) -> Path:
    """确保目录存在"""
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def safe_path_join(*parts: Union[str, Path]) -> Path:
    """安全的路径拼接（防止目录穿越）

    Raises:
        ValueError: 检测到目录穿越或绝对路径片段
    """
    if not parts:
        return Path(".")

    result = Path(parts[0])

    for part in parts[1:]:
        part_path = Path(part)

        if not str(part) or any(p == ".." for p in part_path.parts):
            raise ValueError(f"检测到非法路径片段: {part!r}")

        if part_path.is_absolute():
            raise ValueError(f"不允许使用绝对路径: {part}")

        result = result / part_path

    return result


def remove_path(path: Union[str, Path]) -> bool:
    """删除文件、符号链接或目录树

    Returns:
        bool: 路径存在并已删除时为 True
    """
    target = Path(path)
    if target.is_symlink() or target.is_file():
        target.unlink()
        return True
    if target.is_dir():
        shutil.rmtree(target)
        return True
    return False


def copy_item(source: Union[str, Path], destination: Union[str, Path]) -> Path:
    """复制文件或目录（.app 包）到目标位置，目标已存在时先删除"""
    source = Path(source)
    destination = Path(destination)
    remove_path(destination)
    ensure_directory(destination.parent)

    if source.is_dir():
        shutil.copytree(source, destination, symlinks=True)
    else:
        shutil.copy2(source, destination)
    return destination


def move_item(source: Union[str, Path], destination: Union[str, Path]) -> Path:
    """移动文件到目标位置，目标已存在时先删除"""
    destination = Path(destination)
    remove_path(destination)
    ensure_directory(destination.parent)
    shutil.move(str(source), str(destination))
    return destination


def format_size(size_bytes: int) -> str:
    """格式化文件大小"""
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"
