"""CLI — 执行作业并上报"""

from __future__ import annotations

import logging

import click

from imagerunner.core.config import DEFAULT_IMAGE_CONF, ManagerOptions
from imagerunner.core.exceptions import ImageError
from imagerunner.utils.shell import get_executor

logger = logging.getLogger(__name__)

SHUTDOWN_CMD = ["shutdown", "-h", "0"]


def register(group: click.Group) -> None:
    group.add_command(run)


def _shutdown() -> None:
    try:
        r = get_executor().execute(SHUTDOWN_CMD)
    except OSError as e:
        logger.error("关机命令无法执行: %s", e)
        return
    if not r.success:
        logger.error("关机失败 (rc=%d): %s", r.returncode, r.stderr[:300])


@click.command()
@click.option("--injector", "-i", required=True, help="已挂载的注入目录")
@click.option("--workarea", "-w", default="", help="可写工作目录（默认自动创建临时目录）")
@click.option("--image-conf", default=DEFAULT_IMAGE_CONF, show_default=True, help="注入目录中的配置文件名")
@click.option("--no-server", is_flag=True, help="离线模式：不联系支撑服务器，只序列化报告")
@click.option("--timeout", type=float, default=None, help="HTTP 请求超时（秒），默认不超时")
@click.option("--shutdown", is_flag=True, help="结束后（无论成败）关闭本机")
def run(
    injector: str, workarea: str, image_conf: str,
    no_server: bool, timeout: float | None, shutdown: bool,
) -> None:
    """执行注入配置中的全部任务并上传报告"""
    from imagerunner.core.manager import Manager

    options = ManagerOptions(
        injector=injector, workarea=workarea, image_conf=image_conf,
        no_server=no_server, timeout=timeout,
    )
    try:
        manager = Manager(options)
        manager.run()
        results = manager.report()
    except ImageError as e:
        logger.error("[%s] %s", e.code, e)
        raise SystemExit(1) from e
    finally:
        if shutdown:
            _shutdown()

    for r in results:
        click.echo(f"job {r.job_id}: {r.status} -> {r.url} ({r.size} bytes)")
