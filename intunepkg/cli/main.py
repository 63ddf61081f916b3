"""
intunepkg CLI 主入口

提供命令行接口，支持 process/cleanup-cache/remove/validate/info 等命令。
"""

import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..utils import configure_logging
from .commands import cache, process, remove, validate


# 创建主应用
app = typer.Typer(
    name="intunepkg",
    help="intunepkg - macOS 软件标签打包与 Intune 发布流水线",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# 控制台输出
console = Console()


# 全局选项
def version_callback(value: bool) -> None:
    """显示版本信息"""
    if value:
        console.print(f"intunepkg v{__version__}")
        raise typer.Exit()


def verbose_callback(verbose: bool) -> None:
    """配置详细输出"""
    configure_logging(level="DEBUG" if verbose else "INFO")


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="显示版本信息"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        callback=verbose_callback,
        help="启用详细输出"
    )
) -> None:
    """intunepkg - macOS 软件标签打包与 Intune 发布流水线

    使用 --help 查看可用命令的详细信息。
    """
    pass


# 注册子命令
app.command("process", help="处理受管标签并发布到 Intune")(process.process_command)
app.command("cleanup-cache", help="清理孤立缓存与旧版本")(cache.cleanup_cache_command)
app.command("remove", help="从 Intune 删除标签的全部版本")(remove.remove_command)
app.command("validate", help="验证配置文件")(validate.validate_command)


@app.command("info")
def info_command() -> None:
    """显示系统信息"""
    import cryptography
    import httpx

    console.print("[bold]intunepkg 系统信息[/bold]")
    console.print()

    table = Table(title="版本信息")
    table.add_column("组件", style="cyan")
    table.add_column("版本", style="green")

    table.add_row("intunepkg", __version__)
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    table.add_row("httpx", httpx.__version__)
    table.add_row("cryptography", cryptography.__version__)
    table.add_row("平台", sys.platform)

    console.print(table)

    if sys.platform != "darwin":
        console.print("[yellow]打包依赖 hdiutil / pkgbuild / spctl，仅能在 macOS 上运行[/yellow]")


if __name__ == "__main__":
    app()
