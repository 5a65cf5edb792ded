"""镜像任务管理器

Manager 运行在系统镜像内部，负责：接收注入目录、校验环境、
加载 image.yml、构造任务、按顺序执行，并把结果报告上传到支撑服务器。

典型启动脚本（镜像开机后执行一次）:

    manager = Manager(ManagerOptions(injector="/mnt/hdb1", workarea="/tmp"))
    manager.run()
    manager.report()

整个流程单线程、严格顺序：任务按加入顺序执行和上报，
任一阶段失败立即中止后续任务，不重试、不做部分成功汇总。
"""

from __future__ import annotations

import logging
import subprocess
import sys
from typing import TYPE_CHECKING

from imagerunner.core.config import ImageConfig, ManagerOptions
from imagerunner.core.exceptions import ImageError, InvalidTaskError, TaskLifecycleFailed
from imagerunner.core.resolver import build_task, default_registry, load_plugins
from imagerunner.core.task import Task
from imagerunner.core.validator import (
    check_injector,
    check_lib_dir,
    check_workarea,
    find_image_conf,
)
from imagerunner.services.uploader import HttpTransport, ReportUploader, check_server

if TYPE_CHECKING:
    from imagerunner.core.models import UploadResult
    from imagerunner.core.resolver import SchemeRegistry
    from imagerunner.services.uploader import Transport
    from imagerunner.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

# prepare/execute 中这些异常会被包装为 TaskLifecycleFailed
_PHASE_ERRORS = (OSError, ValueError, RuntimeError, LookupError, subprocess.SubprocessError)


class Manager:
    """任务编排器：持有有序任务列表，驱动 run / report 两个阶段"""

    def __init__(
        self,
        options: ManagerOptions,
        *,
        registry: SchemeRegistry | None = None,
        transport: Transport | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.options = options
        self.registry = registry or default_registry()
        self.injector = check_injector(options.injector)
        self.workarea = check_workarea(options.workarea)
        self.image_conf = find_image_conf(self.injector, options.image_conf)
        self.config = ImageConfig.from_file(self.image_conf)
        self.lib_dir = None

        if self.config.lib:
            self.lib_dir = check_lib_dir(self.injector, self.config.lib)
            if str(self.lib_dir) not in sys.path:
                sys.path.insert(0, str(self.lib_dir))
            logger.info("已加入注入目录中的插件路径: %s", self.lib_dir)
        if self.config.plugins:
            load_plugins(list(self.config.plugins), self.registry)

        self.transport: Transport = transport or HttpTransport(timeout=options.timeout)
        if not options.no_server:
            check_server(self.config.server_uri, self.transport)
        else:
            logger.warning("no_server 模式：不会联系支撑服务器 %s", self.config.server_uri)

        self.uploader = ReportUploader(
            self.config.server_uri,
            no_server=options.no_server,
            transport=self.transport,
        )

        self._tasks: list[Task] = []
        for spec in self.config.tasks:
            self.add_task(build_task(
                spec,
                injector=str(self.injector),
                workarea=str(self.workarea),
                registry=self.registry,
                executor=executor,
            ))

    @property
    def server_uri(self) -> str:
        return self.config.server_uri

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    def add_task(self, task: Task) -> None:
        """追加任务，保持加入顺序"""
        if not isinstance(task, Task):
            raise InvalidTaskError(f"add_task 参数不是 Task: {task!r}")
        self._tasks.append(task)
        logger.debug("任务已加入: %r", task)

    # =====================================================================
    # run 阶段
    # =====================================================================

    def run(self) -> None:
        """按加入顺序对每个任务执行 prepare -> execute"""
        logger.info("开始执行 %d 个任务", len(self._tasks))
        for task in self._tasks:
            self.run_task(task)
        logger.info("全部任务执行完成")

    def run_task(self, task: Task) -> None:
        for phase in ("prepare", "execute"):
            logger.info("任务 %s (%s): %s", task.job_id, task.scheme, phase)
            try:
                getattr(task, phase)()
            except ImageError:
                raise
            except _PHASE_ERRORS as e:
                raise TaskLifecycleFailed(phase, task.scheme, task.job_id, str(e)) from e

    # =====================================================================
    # report 阶段
    # =====================================================================

    def report(self) -> list[UploadResult]:
        """按加入顺序上传每个任务的报告，任一失败即中止"""
        results = []
        for task in self._tasks:
            results.append(self.uploader.upload(task))
        logger.info("全部报告处理完成: %d 个", len(results))
        return results

    def report_uri(self, task: Task) -> str:
        return self.uploader.uri_for(task)
