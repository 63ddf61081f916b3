"""
Remove 命令实现

从 Intune 删除某个受管标签的全部远端版本。
"""

from pathlib import Path

import typer
from rich.console import Console

from ...config import ConfigError, load_config
from ...graph.client import GraphError
from ...pipeline import PublishError, PublishPipeline


console = Console()


def remove_command(
    folder: str = typer.Argument(..., help="受管标签目录名 (label_trackingid)"),
    config: str = typer.Option(..., "--config", "-c", help="配置文件路径"),
    yes: bool = typer.Option(False, "--yes", "-y", help="不再确认"),
) -> None:
    """删除标签在 Intune 中的全部版本

    示例:
        intunepkg remove -c config.yaml firefox_3F2A
    """
    try:
        config_obj = load_config(Path(config))
    except ConfigError as e:
        console.print(f"[red]配置错误[/red]: {e}")
        raise typer.Exit(1)

    if not yes and not typer.confirm(f"确认从 Intune 删除 {folder} 的全部版本?"):
        raise typer.Exit()

    try:
        pipeline = PublishPipeline(config_obj)
    except GraphError as e:
        console.print(f"[red]无法连接 Intune[/red]: {e}")
        raise typer.Exit(1)

    try:
        count = pipeline.remove_automation(folder)
    except PublishError as e:
        console.print(f"[red]删除失败[/red]: {e}")
        raise typer.Exit(1)
    finally:
        pipeline.close()

    console.print(f"[green]✓ 已删除 {count} 个远端应用[/green]")
