"""共享 fixture — 假驱动、假传输、假执行器、注入目录构造"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from imagerunner.core.config import CONFIG_CLASS, CONFIG_VERSION
from imagerunner.core.models import Platform, Report
from imagerunner.core.resolver import SchemeRegistry
from imagerunner.core.task import Scheme
from imagerunner.utils.shell import CommandResult

# =========================================================================
# 假方案驱动：记录调用顺序，按 path 注入失败
# =========================================================================

EVENTS: list[str] = []


class RecordingScheme(Scheme):
    """path 控制行为: fail-prepare / fail-execute / no-report；
    discover 目标以 missing 开头时探测不到平台"""

    def discover(self, target: str = "") -> Platform | None:
        EVENTS.append(f"discover:{target}")
        if target.startswith("missing"):
            return None
        return Platform(scheme=self.scheme, path=self.path, facts={"target": target})

    def prepare(self) -> None:
        EVENTS.append(f"prepare:{self.request_id}")
        if self.path == "fail-prepare":
            raise RuntimeError("prepare boom")

    def execute(self) -> None:
        EVENTS.append(f"execute:{self.request_id}")
        if self.path == "fail-execute":
            raise OSError("execute boom")
        if self.path != "no-report":
            self.report = Report(
                scheme=self.scheme, job_id=self.request_id,
                request=self.request, status="pass",
            )


@pytest.fixture()
def events() -> list[str]:
    EVENTS.clear()
    return EVENTS


@pytest.fixture()
def registry() -> SchemeRegistry:
    reg = SchemeRegistry()
    reg.register("test.recording", RecordingScheme)
    return reg


@pytest.fixture()
def recording_scheme() -> type[RecordingScheme]:
    return RecordingScheme


# =========================================================================
# 假 HTTP 传输
# =========================================================================


class FakeTransport:
    def __init__(self, get_status: int = 200, put_status: int = 201) -> None:
        self.get_status = get_status
        self.put_status = put_status
        self.error: Exception | None = None
        self.gets: list[str] = []
        self.sent: list[Any] = []

    def get(self, url: str) -> int:
        self.gets.append(url)
        if self.error is not None:
            raise self.error
        return self.get_status

    def send(self, request: Any) -> int:
        self.sent.append(request)
        if self.error is not None:
            raise self.error
        return self.put_status


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


# =========================================================================
# 假命令执行器
# =========================================================================


class FakeExecutor:
    """按命令首个参数匹配预设结果；未预设的命令返回 rc=0"""

    def __init__(self) -> None:
        self.results: dict[str, CommandResult] = {}
        self.missing: set[str] = set()
        self.calls: list[dict[str, Any]] = []

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = cmd.split() if isinstance(cmd, str) else list(cmd)
        self.calls.append({"cmd": args, "cwd": cwd, "env": env})
        if args[0] in self.missing:
            raise FileNotFoundError(args[0])
        key = " ".join(args[:2])
        if key in self.results:
            return self.results[key]
        return self.results.get(args[0], CommandResult(0, "", ""))


@pytest.fixture()
def executor() -> FakeExecutor:
    return FakeExecutor()


# =========================================================================
# 注入目录
# =========================================================================


def _task(scheme: str = "test.recording", path: str = "", job_id: int = 100, **extra: Any) -> dict:
    return {"scheme": scheme, "path": path, "config": f"request-{job_id}.yml", "job_id": job_id, **extra}


@pytest.fixture()
def task_entry() -> Callable[..., dict]:
    return _task


@pytest.fixture()
def make_injector(tmp_path: Path) -> Callable[..., Path]:
    """构造注入目录并写入 image.yml，返回注入目录路径"""

    def _make(
        tasks: list[dict] | None = None,
        *,
        server_uri: str = "http://10.0.2.2/",
        name: str = "injector",
        **overrides: Any,
    ) -> Path:
        injector = tmp_path / name
        injector.mkdir()
        data: dict[str, Any] = {
            "class": CONFIG_CLASS,
            "version": CONFIG_VERSION,
            "server_uri": server_uri,
            "tasks": tasks if tasks is not None else [_task()],
        }
        data.update(overrides)
        (injector / "image.yml").write_text(yaml.safe_dump(data), encoding="utf-8")
        return injector

    return _make


@pytest.fixture()
def workarea(tmp_path: Path) -> Path:
    w = tmp_path / "work"
    w.mkdir()
    return w
