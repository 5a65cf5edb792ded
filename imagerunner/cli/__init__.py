"""imagerunner 命令行接口

镜像开机脚本通常只调用一次: imagerunner run --injector /mnt/hdb1 --shutdown
CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from imagerunner import __version__
from imagerunner.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """imagerunner - 系统镜像内的测试执行代理"""
    setup_logging(
        level=os.getenv("IMAGERUNNER_LOG_LEVEL", "INFO"),
        json_output=os.getenv("IMAGERUNNER_LOG_JSON", "") == "1",
    )


# 注册各领域子命令
from imagerunner.cli.cmd_run import register as _reg_run  # noqa: E402
from imagerunner.cli.cmd_discover import register as _reg_discover  # noqa: E402

_reg_run(main)
_reg_discover(main)
