"""端到端场景：注入目录 -> Manager -> run -> report"""

from __future__ import annotations

import io

from imagerunner.core.config import ManagerOptions
from imagerunner.core.manager import Manager


class TestNoServerScenario:
    def test_two_tasks_offline(self, make_injector, workarea, registry, transport, task_entry, events) -> None:
        injector = make_injector(
            [task_entry(job_id=100), task_entry(job_id=200)],
            server_uri="http://support.example/jobs/current",
        )
        m = Manager(
            ManagerOptions(injector=str(injector), workarea=str(workarea), no_server=True),
            registry=registry, transport=transport,
        )
        m.run()
        results = m.report()

        assert events == ["prepare:100", "execute:100", "prepare:200", "execute:200"]
        assert [r.status for r in results] == ["skipped", "skipped"]
        assert [r.url for r in results] == [
            "http://support.example/jobs/100",
            "http://support.example/jobs/200",
        ]
        for task, result in zip(m.tasks, results):
            buf = io.BytesIO()
            assert result.size == task.report.write_to(buf) > 0
        # 全程没有任何网络调用
        assert transport.gets == []
        assert transport.sent == []

    def test_discovery_job_uploads_guest(self, make_injector, workarea, registry, transport, events) -> None:
        injector = make_injector([{
            "task": "Discover", "scheme": "test.recording", "path": "",
            "job_id": 300, "platforms": ["first", "second"],
        }])
        m = Manager(
            ManagerOptions(injector=str(injector), workarea=str(workarea)),
            registry=registry, transport=transport,
        )
        m.run()
        results = m.report()

        assert results[0].status == "success"
        body = transport.sent[0].data.decode("utf-8")
        assert body.index(">first<") < body.index(">second<")
        assert '<guest driver="local">' in body
        assert transport.sent[0].full_url == "http://10.0.2.2/300"
