"""
Process 命令实现

逐个处理受管标签目录并输出汇总表。
"""

import traceback
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ...config import ConfigError, ConfigValidationError, LabelLoader, load_config
from ...graph.client import GraphError
from ...pipeline import FatalPublishError, PublishError, PublishPipeline, PublishResult
from ...utils.logging import OutputLevel, set_log_file, set_log_level


console = Console()


def _summary_table(results: List[PublishResult]) -> Table:
    table = Table(title="处理结果")
    table.add_column("目录", style="cyan")
    table.add_column("版本", style="magenta")
    table.add_column("结果")
    table.add_column("说明")
    table.add_column("耗时", justify="right")

    for result in results:
        if not result.success:
            status = "[red]✗ 失败[/red]"
        elif result.skipped:
            status = "[blue]- 已是最新[/blue]"
        elif result.warnings:
            status = "[yellow]✓ 有警告[/yellow]"
        else:
            status = "[green]✓ 已上传[/green]"
        table.add_row(result.folder, result.version or "-", status, result.message, f"{result.duration:.1f}s")
    return table


def process_command(
    folders: Optional[List[str]] = typer.Argument(None, help="受管标签目录名 (label_trackingid)"),
    config: str = typer.Option(..., "--config", "-c", help="配置文件路径"),
    all_folders: bool = typer.Option(False, "--all", help="处理全部受管标签目录"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """处理受管标签

    示例:
        intunepkg process -c config.yaml firefox_3F2A
        intunepkg process -c config.yaml --all
    """
    set_log_level(OutputLevel.DEBUG if verbose else OutputLevel.INFO)
    if log_file:
        try:
            set_log_file(log_file)
        except OSError:
            console.print(f"[yellow]无法写入日志文件: {log_file}[/yellow]")

    try:
        config_obj = load_config(Path(config))
    except ConfigValidationError as e:
        console.print("[red]配置验证失败:[/red]")
        console.print(e.format_errors())
        raise typer.Exit(1)
    except ConfigError as e:
        console.print(f"[red]配置错误[/red]: {e}")
        raise typer.Exit(1)

    if folders:
        names = list(folders)
    elif all_folders:
        names = LabelLoader(config_obj.paths.managed_titles_root).list_folders()
    else:
        console.print("[red]请指定标签目录或使用 --all[/red]")
        raise typer.Exit(1)

    if not names:
        console.print("[yellow]没有需要处理的标签目录[/yellow]")
        return

    try:
        pipeline = PublishPipeline(config_obj)
    except GraphError as e:
        console.print(f"[red]无法连接 Intune[/red]: {e}")
        raise typer.Exit(1)

    results: List[PublishResult] = []
    try:
        for name in names:
            label = LabelLoader.split_folder_name(name)[0]
            try:
                results.append(pipeline.run(name))
            except FatalPublishError as e:
                results.append(PublishResult.failed(name, label, f"致命错误: {e}"))
            except PublishError as e:
                results.append(PublishResult.failed(name, label, str(e)))
                if log_file:
                    console.print(f"[yellow]详细错误信息:[/yellow]\n{traceback.format_exc()}")
    finally:
        pipeline.close()

    console.print()
    console.print(_summary_table(results))

    if any(not result.success for result in results):
        raise typer.Exit(1)
