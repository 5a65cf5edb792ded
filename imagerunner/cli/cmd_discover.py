"""CLI — 平台探测与方案列表"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from imagerunner.core.exceptions import ImageError
from imagerunner.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)


def register(group: click.Group) -> None:
    group.add_command(discover)
    group.add_command(schemes)


@click.command()
@click.option("--scheme", "-s", required=True, help="方案标识，如 perl5")
@click.option("--path", "-p", default="", help="被测对象路径（默认系统默认）")
@click.option("--platform", "platforms", multiple=True, required=True, help="平台目标（可多次指定）")
@click.option("--output", "-o", default="", help="Guest XML 输出文件（默认输出到 stdout）")
def discover(scheme: str, path: str, platforms: tuple[str, ...], output: str) -> None:
    """探测本机平台，输出 Guest XML"""
    from imagerunner.core.discover import Discovery

    try:
        guest = Discovery(scheme=scheme, path=path, platforms=list(platforms)).run()
    except ImageError as e:
        logger.error("[%s] %s", e.code, e)
        raise SystemExit(1) from e

    xml = guest.to_xml()
    if output:
        atomic_write(Path(output), xml)
        click.echo(f"Guest 已写入: {output} ({len(guest.platforms)} 个平台)")
    else:
        click.echo(xml, nl=False)


@click.command()
def schemes() -> None:
    """列出已注册的方案驱动"""
    from imagerunner.core.resolver import default_registry

    for name in default_registry().names():
        click.echo(name)
