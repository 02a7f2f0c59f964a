# t3lang/cli/scan.py
"""'scan' 命令：扫描目录并列出所有翻译分组。"""

import asyncio
import os
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from t3lang.filesystem import LocalFileSystem
from t3lang.scanner import scan_workspace
from t3lang.types import WorkspaceScan
from t3lang.utils import sort_languages

console = Console()


def render_scan(scan: WorkspaceScan) -> Table:
    """把扫描结果渲染成一个 Rich 表格。"""
    table = Table(title=f"工作区: {scan.root_path}", show_lines=False)
    table.add_column("分组", style="cyan", no_wrap=True)
    table.add_column("语言", style="green")
    table.add_column("源文件", style="dim")

    for group in scan.groups:
        relative = os.path.relpath(group.directory, scan.root_path)
        name = group.base_name if relative == "." else f"{relative}/{group.base_name}"
        languages = ", ".join(sort_languages(list(group.files)))
        source = group.source_file.name if group.source_file else "[yellow]缺失[/yellow]"
        table.add_row(name, languages, source)
    return table


def scan(
    root: Annotated[
        str, typer.Argument(help="要扫描的工作区根目录。")
    ],
) -> None:
    """扫描工作区目录，按 TYPO3 命名约定列出所有翻译分组。"""
    if not os.path.isdir(root):
        console.print(f"[bold red]❌ 目录不存在: {root}[/bold red]")
        raise typer.Exit(code=1)

    result = asyncio.run(scan_workspace(LocalFileSystem(), os.path.abspath(root)))
    if not result.groups:
        console.print("[yellow]⚠️ 没有找到任何 XLIFF 文件。[/yellow]")
        return

    console.print(render_scan(result))
    console.print(
        f"[green]✅ 共 {len(result.groups)} 个分组，{result.total_files} 个文件。[/green]"
    )
