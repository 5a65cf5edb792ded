"""Shell 命令执行工具 — 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方案驱动只依赖协议，
测试时注入假执行器即可，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandExecutor(Protocol):
    """命令执行器协议 — 抽象子进程调用"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """执行命令并返回结果；命令无法启动时抛 OSError"""
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else cmd
        logger.debug("执行命令: %s (cwd=%s)", " ".join(args), cwd)
        r = subprocess.run(
            args, capture_output=True, text=True, errors="replace",
            cwd=cwd, env=env, check=False, timeout=timeout,
        )
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    """获取全局默认命令执行器"""
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认命令执行器（用于测试）"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor
