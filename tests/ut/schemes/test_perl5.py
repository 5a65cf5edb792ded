"""Perl 5 方案驱动单元测试（假执行器，不依赖本机 perl）"""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest

from imagerunner.core.exceptions import DiscoveryFailed, TaskLifecycleFailed
from imagerunner.schemes.perl5 import Perl5, Perl5Make
from imagerunner.utils.shell import CommandResult

PROBE_OUTPUT = "version=5.36.0\narchname=x86_64-linux\nosname=linux\npath=/usr/bin/perl\n"


@pytest.fixture()
def perl_ok(executor):
    executor.results["perl -MConfig"] = CommandResult(0, PROBE_OUTPUT, "")
    return executor


def _make_dist(injector: Path, name: str = "Foo-Bar-1.00", with_makefile: bool = True) -> str:
    dists = injector / "dists"
    dists.mkdir(exist_ok=True)
    archive = dists / f"{name}.tar.gz"
    with tarfile.open(archive, "w:gz") as tf:
        files = {f"{name}/lib/Foo/Bar.pm": b"package Foo::Bar; 1;\n"}
        if with_makefile:
            files[f"{name}/Makefile.PL"] = b"use ExtUtils::MakeMaker; WriteMakefile();\n"
        for member, data in files.items():
            info = tarfile.TarInfo(member)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return f"dists/{name}.tar.gz"


def _make_request(injector: Path, archive: str, job_id: int = 512311) -> str:
    name = f"request-{job_id}.yml"
    (injector / name).write_text(f"name: Foo-Bar-1.00\narchive: {archive}\n", encoding="utf-8")
    return name


def _driver(cls, injector: Path, workarea: Path, executor, **kw):
    params = {"scheme": "perl5.make", "path": "", "request": "", "request_id": 512311}
    params.update(kw)
    return cls(injector=str(injector), workarea=str(workarea), executor=executor, **params)


@pytest.fixture()
def injector(tmp_path: Path) -> Path:
    d = tmp_path / "inj"
    d.mkdir()
    return d


class TestPerl5Discover:
    def test_platform_facts(self, injector, workarea, perl_ok) -> None:
        p = _driver(Perl5, injector, workarea, perl_ok, scheme="perl5").discover()
        assert p is not None
        assert p.facts["version"] == "5.36.0"
        assert p.facts["archname"] == "x86_64-linux"
        assert p.path == "/usr/bin/perl"
        assert perl_ok.calls[0]["cmd"][0] == "perl"

    def test_target_overrides_path(self, injector, workarea, executor) -> None:
        executor.results["/opt/perl/bin/perl -MConfig"] = CommandResult(0, PROBE_OUTPUT, "")
        d = _driver(Perl5, injector, workarea, executor, scheme="perl5", path="/usr/bin/perl")
        assert d.discover("/opt/perl/bin/perl") is not None
        assert executor.calls[0]["cmd"][0] == "/opt/perl/bin/perl"

    def test_missing_interpreter(self, injector, workarea, executor) -> None:
        executor.missing.add("perl")
        assert _driver(Perl5, injector, workarea, executor, scheme="perl5").discover() is None

    def test_nonzero_exit(self, injector, workarea, executor) -> None:
        executor.results["perl -MConfig"] = CommandResult(2, "", "Can't locate Config.pm")
        assert _driver(Perl5, injector, workarea, executor, scheme="perl5").discover() is None

    def test_no_version(self, injector, workarea, executor) -> None:
        executor.results["perl -MConfig"] = CommandResult(0, "garbage", "")
        assert _driver(Perl5, injector, workarea, executor, scheme="perl5").discover() is None

    def test_execute_reports_platform(self, injector, workarea, perl_ok) -> None:
        d = _driver(Perl5, injector, workarea, perl_ok, scheme="perl5")
        d.prepare()
        d.execute()
        assert d.report.status == "pass"
        assert d.report.platform.facts["osname"] == "linux"

    def test_execute_without_perl(self, injector, workarea, executor) -> None:
        executor.missing.add("perl")
        d = _driver(Perl5, injector, workarea, executor, scheme="perl5")
        with pytest.raises(DiscoveryFailed):
            d.execute()


class TestPerl5Make:
    def test_prepare_extracts_dist(self, injector, workarea, perl_ok) -> None:
        request = _make_request(injector, _make_dist(injector))
        d = _driver(Perl5Make, injector, workarea, perl_ok, request=request)
        d.prepare()
        assert d.dist_dir is not None
        assert (d.dist_dir / "Makefile.PL").is_file()
        assert workarea in d.dist_dir.parents

    def test_execute_pass(self, injector, workarea, perl_ok) -> None:
        request = _make_request(injector, _make_dist(injector))
        d = _driver(Perl5Make, injector, workarea, perl_ok, request=request)
        d.prepare()
        d.execute()
        assert d.report.status == "pass"
        assert [c.cmd for c in d.report.commands] == ["perl Makefile.PL", "make", "make test"]
        build_calls = perl_ok.calls[1:]
        assert all(c["cwd"] == str(d.dist_dir) for c in build_calls)
        assert build_calls[0]["env"]["PERL_MM_USE_DEFAULT"] == "1"

    def test_failing_tests_are_reported_not_raised(self, injector, workarea, perl_ok) -> None:
        perl_ok.results["make test"] = CommandResult(1, "not ok 1", "Failed 1/1")
        request = _make_request(injector, _make_dist(injector))
        d = _driver(Perl5Make, injector, workarea, perl_ok, request=request)
        d.prepare()
        d.execute()
        assert d.report.status == "fail"
        assert d.report.commands[-1].returncode == 1

    def test_stops_at_first_failing_step(self, injector, workarea, perl_ok) -> None:
        perl_ok.results["perl Makefile.PL"] = CommandResult(1, "", "Warning: prerequisite missing")
        request = _make_request(injector, _make_dist(injector))
        d = _driver(Perl5Make, injector, workarea, perl_ok, request=request)
        d.prepare()
        d.execute()
        assert d.report.status == "fail"
        assert [c.cmd for c in d.report.commands] == ["perl Makefile.PL"]

    def test_missing_request(self, injector, workarea, perl_ok) -> None:
        d = _driver(Perl5Make, injector, workarea, perl_ok, request="nope.yml")
        with pytest.raises(TaskLifecycleFailed, match="请求描述文件不存在") as exc:
            d.prepare()
        assert exc.value.phase == "prepare"
        assert exc.value.job_id == 512311

    def test_request_without_archive(self, injector, workarea, perl_ok) -> None:
        (injector / "r.yml").write_text("name: x\n", encoding="utf-8")
        d = _driver(Perl5Make, injector, workarea, perl_ok, request="r.yml")
        with pytest.raises(TaskLifecycleFailed, match="缺少 archive"):
            d.prepare()

    def test_archive_outside_injector(self, injector, workarea, perl_ok) -> None:
        (injector / "r.yml").write_text("archive: ../../etc/passwd\n", encoding="utf-8")
        d = _driver(Perl5Make, injector, workarea, perl_ok, request="r.yml")
        with pytest.raises(TaskLifecycleFailed, match="不在注入目录内"):
            d.prepare()

    def test_not_a_tarball(self, injector, workarea, perl_ok) -> None:
        (injector / "broken.tar.gz").write_bytes(b"not a tarball")
        request = _make_request(injector, "broken.tar.gz")
        d = _driver(Perl5Make, injector, workarea, perl_ok, request=request)
        with pytest.raises(TaskLifecycleFailed, match="解压失败"):
            d.prepare()

    def test_no_makefile(self, injector, workarea, perl_ok) -> None:
        request = _make_request(injector, _make_dist(injector, with_makefile=False))
        d = _driver(Perl5Make, injector, workarea, perl_ok, request=request)
        with pytest.raises(TaskLifecycleFailed, match="Makefile.PL"):
            d.prepare()

    def test_execute_before_prepare(self, injector, workarea, perl_ok) -> None:
        d = _driver(Perl5Make, injector, workarea, perl_ok, request="r.yml")
        with pytest.raises(TaskLifecycleFailed, match="尚未执行 prepare"):
            d.execute()
