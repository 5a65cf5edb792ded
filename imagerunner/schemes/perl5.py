"""Perl 5 方案族

  - perl5:      探测 Perl 解释器（版本、架构、操作系统）
  - perl5.make: 解压请求中的发行包，执行 perl Makefile.PL / make / make test

请求描述文件（注入目录内的 YAML）示例:

    name: Foo-Bar-1.00
    archive: dists/Foo-Bar-1.00.tar.gz
"""

from __future__ import annotations

import logging
import os
import tarfile
import tempfile
from pathlib import Path
from typing import Any

import yaml

from imagerunner.core.exceptions import DiscoveryFailed, TaskLifecycleFailed
from imagerunner.core.models import CommandRecord, Platform, Report
from imagerunner.core.task import Scheme
from imagerunner.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_PERL = "perl"

# 一次性取出需要的 Config 项，每行 key=value
_PROBE_SCRIPT = (
    'print "$_=$Config{$_}\\n" for qw(version archname osname);'
    ' print "path=$^X\\n";'
)

# 无人值守构建：ExtUtils::MakeMaker 的提问全部取默认值
_BUILD_ENV = {
    "PERL_MM_USE_DEFAULT": "1",
    "AUTOMATED_TESTING": "1",
}


def _parse_facts(output: str) -> dict[str, str]:
    facts: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip():
            facts[key.strip()] = value.strip()
    return facts


class Perl5(Scheme):
    """Perl 解释器探测"""

    def perl(self, target: str = "") -> str:
        return target or self.path or DEFAULT_PERL

    def discover(self, target: str = "") -> Platform | None:
        perl = self.perl(target)
        try:
            r = self.executor.execute(
                [perl, "-MConfig", "-e", _PROBE_SCRIPT],
                cwd=self.workarea or ".",
            )
        except OSError as e:
            logger.warning("无法运行 Perl 解释器 %s: %s", perl, e)
            return None
        if not r.success:
            logger.warning("Perl 探测失败 %s (rc=%d): %s", perl, r.returncode, r.stderr[:300])
            return None
        facts = _parse_facts(r.stdout)
        if not facts.get("version"):
            logger.warning("Perl 探测输出中没有版本信息: %s", perl)
            return None
        return Platform(scheme=self.scheme, path=facts.get("path", perl), facts=facts)

    def _discover_or_fail(self) -> Platform:
        platform = self.discover()
        if platform is None:
            raise DiscoveryFailed(self.scheme, self.path, "", 0)
        return platform

    def prepare(self) -> None:
        pass

    def execute(self) -> None:
        self.report = Report(
            scheme=self.scheme, job_id=self.request_id, request=self.request,
            status="pass", platform=self._discover_or_fail(),
        )


class Perl5Make(Perl5):
    """基于 ExtUtils::MakeMaker 的发行包测试"""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.archive: Path | None = None
        self.dist_dir: Path | None = None

    def _fail(self, phase: str, reason: str) -> TaskLifecycleFailed:
        return TaskLifecycleFailed(phase, self.scheme, self.request_id, reason)

    def _inside_injector(self, rel: str) -> Path:
        root = Path(self.injector).resolve()
        p = (root / rel).resolve()
        if root != p and root not in p.parents:
            raise self._fail("prepare", f"路径不在注入目录内: {rel}")
        return p

    def prepare(self) -> None:
        """读取请求描述，把发行包解压到工作目录"""
        if not self.request:
            raise self._fail("prepare", "缺少请求描述文件")
        request_file = self._inside_injector(self.request)
        if not request_file.is_file():
            raise self._fail("prepare", f"请求描述文件不存在: {self.request}")
        try:
            request = load_yaml(request_file)
        except (yaml.YAMLError, ValueError) as e:
            raise self._fail("prepare", f"请求描述文件无法解析: {e}") from e

        archive = request.get("archive")
        if not archive:
            raise self._fail("prepare", f"请求描述 {self.request} 中缺少 archive")
        self.archive = self._inside_injector(str(archive))
        if not self.archive.is_file():
            raise self._fail("prepare", f"发行包不存在: {archive}")

        dest = Path(tempfile.mkdtemp(prefix=f"job-{self.request_id}-", dir=self.workarea))
        try:
            with tarfile.open(self.archive) as tf:
                tf.extractall(path=str(dest), filter="data")  # noqa: S202
        except tarfile.TarError as e:
            raise self._fail("prepare", f"发行包解压失败 {archive}: {e}") from e

        self.dist_dir = self._find_dist_dir(dest)
        logger.info("发行包已就绪: %s -> %s", request.get("name") or archive, self.dist_dir)

    def _find_dist_dir(self, dest: Path) -> Path:
        if (dest / "Makefile.PL").is_file():
            return dest
        candidates = [d for d in dest.iterdir() if d.is_dir() and (d / "Makefile.PL").is_file()]
        if len(candidates) != 1:
            raise self._fail("prepare", f"发行包中找不到唯一的 Makefile.PL: {self.archive}")
        return candidates[0]

    def commands(self) -> list[list[str]]:
        return [
            [self.perl(), "Makefile.PL"],
            ["make"],
            ["make", "test"],
        ]

    def execute(self) -> None:
        """构建并测试；测试失败记录在报告中，不算生命周期失败"""
        if self.dist_dir is None:
            raise self._fail("execute", "尚未执行 prepare")

        report = Report(
            scheme=self.scheme, job_id=self.request_id, request=self.request,
            platform=self._discover_or_fail(),
        )
        env = {**os.environ, **_BUILD_ENV}
        report.status = "pass"
        for cmd in self.commands():
            r = self.executor.execute(cmd, cwd=str(self.dist_dir), env=env)
            report.add_command(CommandRecord(
                cmd=" ".join(cmd), returncode=r.returncode,
                stdout=r.stdout, stderr=r.stderr,
            ))
            if not r.success:
                logger.warning("命令失败 (rc=%d): %s", r.returncode, " ".join(cmd))
                report.status = "fail"
                break
        self.report = report
        logger.info("任务 %s 执行完成: %s", self.request_id, report.status)
