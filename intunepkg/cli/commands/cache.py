"""
cleanup-cache 命令实现

删除没有对应受管标签的缓存目录，并按数值版本裁剪旧缓存。
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ...cache import CacheStore
from ...config import ConfigError, LabelLoader, load_config


console = Console()


def cleanup_cache_command(
    config: str = typer.Option(..., "--config", "-c", help="配置文件路径"),
    keep: Optional[int] = typer.Option(None, "--keep", "-k", min=1, help="每个标签保留的版本数（默认取配置）"),
) -> None:
    """清理缓存

    示例:
        intunepkg cleanup-cache -c config.yaml
        intunepkg cleanup-cache -c config.yaml --keep 1
    """
    try:
        config_obj = load_config(Path(config))
    except ConfigError as e:
        console.print(f"[red]配置错误[/red]: {e}")
        raise typer.Exit(1)

    keep = keep or config_obj.retention.versions_to_keep
    cache = CacheStore(config_obj.paths.cache_root)
    managed = LabelLoader(config_obj.paths.managed_titles_root).managed_labels()

    removed = cache.remove_orphans(managed)
    trimmed = cache.trim_versions(keep)

    table = Table(title="缓存清理结果")
    table.add_column("标签", style="cyan")
    table.add_column("操作")
    table.add_column("内容", style="yellow")

    for label in removed:
        table.add_row(label, "删除孤立缓存", "-")
    for label, versions in sorted(trimmed.items()):
        table.add_row(label, f"删除旧版本 (保留 {keep} 个)", ", ".join(versions))

    if removed or trimmed:
        console.print(table)
    else:
        console.print("[green]缓存无需清理[/green]")
