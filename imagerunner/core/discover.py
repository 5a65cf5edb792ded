"""平台探测协调器

对一组平台目标逐个执行探测，汇总为一个 Guest。
全有或全无：任一目标探测不到平台即整体失败，不重试、不跳过，
避免某个平台探针坏掉时镜像悄悄少报平台。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from imagerunner.core.exceptions import ConfigurationError, DiscoveryFailed
from imagerunner.core.models import GUEST_DRIVER_LOCAL, Guest
from imagerunner.core.task import Task

if TYPE_CHECKING:
    from imagerunner.core.resolver import SchemeRegistry
    from imagerunner.core.task import Scheme
    from imagerunner.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class Discovery(Task):
    """平台探测任务

    可以单独调用 run()，也可以作为 discover 类型的任务交给 Manager，
    驱动在构造时解析，execute() 执行探测，Guest 作为报告上传。
    """

    def __init__(
        self, *,
        scheme: str,
        path: str = "",
        platforms: list[str],
        job_id: int = 0,
        registry: SchemeRegistry | None = None,
        injector: str = "",
        workarea: str = "",
        executor: CommandExecutor | None = None,
    ) -> None:
        if not scheme:
            raise ConfigurationError("Discovery 缺少 scheme")
        if not isinstance(platforms, list) or not platforms:
            raise ConfigurationError("Discovery 需要非空的 platforms 列表", scheme=scheme)
        if registry is None:
            from imagerunner.core.resolver import default_registry
            registry = default_registry()
        self.scheme = scheme
        self.path = path
        self.platforms = list(platforms)
        self.job_id = job_id
        self.registry = registry
        self.injector = injector
        self.workarea = workarea
        self.executor = executor
        self.report = None
        # 当前/最近一次探测中的 Guest，失败时保留已探测的部分供排查
        self.guest: Guest | None = None
        self.result: Guest | None = None
        # 驱动在构造时解析，未知 scheme 不会产生任务
        self._driver_cls: type[Scheme] = registry.resolve(scheme)

    def _driver(self) -> Scheme:
        return self._driver_cls(
            injector=self.injector,
            workarea=self.workarea,
            scheme=self.scheme,
            path=self.path,
            request_id=self.job_id,
            executor=self.executor,
        )

    def run(self) -> Guest:
        """按目标顺序探测，返回 Guest

        Raises:
            DiscoveryFailed: 第一个探测不到平台的目标
        """
        self.result = None
        self.guest = Guest(driver=GUEST_DRIVER_LOCAL)
        for index, target in enumerate(self.platforms):
            platform = self._driver().discover(target)
            if platform is None:
                raise DiscoveryFailed(self.scheme, self.path, target, index)
            self.guest.add_platform(platform)
            logger.info(
                "平台探测成功 [%d/%d]: %s %s",
                index + 1, len(self.platforms), self.scheme, target or self.path or "<默认>",
            )
        self.result = self.guest
        return self.guest

    def prepare(self) -> None:
        logger.debug("探测任务 %s: 驱动 %s 已就绪", self.job_id, self._driver_cls.__name__)

    def execute(self) -> None:
        self.report = self.run()

    def __repr__(self) -> str:
        return (
            f"Discovery(scheme={self.scheme!r}, path={self.path!r}, "
            f"platforms={self.platforms!r}, job_id={self.job_id})"
        )
