"""
Validate 命令实现

验证流水线配置文件，可选同时验证全部标签描述。
"""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ...config import ConfigError, ConfigValidationError, LabelLoader, load_config, validate_config


console = Console()


def _error_table(title: str, errors) -> Table:
    table = Table(title=title)
    table.add_column("位置", style="cyan", no_wrap=True)
    table.add_column("错误信息", style="red")
    table.add_column("输入值", style="yellow")

    for error in errors:
        location = " -> ".join(str(item) for item in error.get("loc", []))
        input_value = str(error.get("input", ""))
        if len(input_value) > 47:
            input_value = input_value[:47] + "..."
        table.add_row(location or "根级别", error.get("msg", "未知错误"), input_value or "-")
    return table


def validate_command(
    config: str = typer.Option(..., "--config", "-c", help="配置文件路径"),
    json_output: bool = typer.Option(False, "--json", help="输出 JSON 格式的错误信息"),
    labels: bool = typer.Option(False, "--labels", help="同时验证全部受管标签描述"),
) -> None:
    """验证配置文件

    示例:
        intunepkg validate -c config.yaml
        intunepkg validate -c config.yaml --labels
    """
    config_path = Path(config)

    if not config_path.exists():
        console.print(f"[red]配置文件不存在: {config_path}[/red]")
        raise typer.Exit(1)

    try:
        console.print(f"正在验证配置文件: [cyan]{config_path}[/cyan]")
        errors = validate_config(config_path)
    except ConfigError as e:
        if json_output:
            console.print(json.dumps({"file": str(config_path), "error": str(e)}, ensure_ascii=False, indent=2))
        else:
            console.print(f"[red]配置错误: {e}[/red]")
        raise typer.Exit(1)

    if errors:
        if json_output:
            report = ConfigValidationError("配置文件验证失败", errors)
            console.print(report.format_errors_json(str(config_path)), markup=False, soft_wrap=True)
        else:
            console.print(f"[red]配置文件验证失败 ({len(errors)} 个错误):[/red]")
            console.print(_error_table("验证错误", errors))
        raise typer.Exit(1)

    console.print("[green]✓ 配置文件验证通过[/green]")
    if not labels:
        return

    config_obj = load_config(config_path)
    loader = LabelLoader(config_obj.paths.managed_titles_root)
    failed = 0
    for folder in loader.list_folders():
        try:
            loader.load(folder)
        except ConfigValidationError as e:
            failed += 1
            if json_output:
                console.print(e.format_errors_json(folder), markup=False, soft_wrap=True)
            else:
                console.print(_error_table(folder, e.errors))
        except ConfigError as e:
            failed += 1
            console.print(f"[red]{folder}: {e}[/red]")

    if failed:
        console.print(f"[red]{failed} 个标签描述无效[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ 全部标签描述验证通过[/green]")
