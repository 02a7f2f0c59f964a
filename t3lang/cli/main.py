# t3lang/cli/main.py
"""t3lang CLI 的主入口点。"""

from typing import Annotated

import typer
from rich.console import Console

import t3lang
from t3lang.cli.scan import scan
from t3lang.config import load_config
from t3lang.logging_config import setup_logging_from_config

# 创建主 Typer 应用
app = typer.Typer(
    name="t3lang",
    help="TYPO3 XLIFF 翻译工作区工具。",
    add_completion=False,
    no_args_is_help=True,
)

app.command("scan")(scan)

console = Console()


def version_callback(value: bool) -> None:
    """处理 --version 选项的回调函数。"""
    if value:
        console.print(f"t3lang [bold cyan]v{t3lang.__version__}[/bold cyan]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="显示版本信息并退出。",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """主回调函数，在任何子命令执行前加载配置并配置日志。"""
    try:
        setup_logging_from_config(load_config())
    except Exception as e:
        console.print("[bold red]❌ 启动失败：无法加载配置或初始化日志。[/bold red]")
        console.print(f"[dim]{e}[/dim]")
        raise typer.Exit(code=1) from e
