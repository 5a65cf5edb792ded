"""方案解析器 — scheme 标识 → 驱动类

"perl5.make" 按 "." 切分、逐段首字母大写，拼成规范名 "Scheme.Perl5.Make"，
再到注册表中查找。注册项可以是驱动类本身，也可以是 "module:attr" 形式的
惰性引用（首次解析时才 import），新增方案无需改动 Manager。

注册表只做能力查找，不会按配置字符串加载任意模块。
"""

from __future__ import annotations

import importlib
import logging
import re
from typing import TYPE_CHECKING, Union

from imagerunner.core.exceptions import (
    InvalidSchemeName,
    SchemeLoadError,
    SchemeUnavailable,
    UnsupportedScheme,
)
from imagerunner.core.models import KIND_DISCOVER
from imagerunner.core.task import Scheme

if TYPE_CHECKING:
    from imagerunner.core.models import TaskSpec
    from imagerunner.core.task import Task
    from imagerunner.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

SCHEME_PREFIX = "Scheme"
SCHEME_DELIMITER = "."

_SEGMENT_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

DriverEntry = Union[type[Scheme], str]


def canonical_name(scheme: str) -> str:
    """把 scheme 标识转换为规范驱动名

    Raises:
        InvalidSchemeName: 为空，或某段不是合法标识符
    """
    if not isinstance(scheme, str) or not scheme.strip():
        raise InvalidSchemeName(str(scheme))
    segments = scheme.strip().lower().split(SCHEME_DELIMITER)
    if not all(_SEGMENT_RE.match(s) for s in segments):
        raise InvalidSchemeName(scheme)
    return SCHEME_DELIMITER.join([SCHEME_PREFIX] + [s.capitalize() for s in segments])


class SchemeRegistry:
    """方案驱动注册表"""

    def __init__(self) -> None:
        self._entries: dict[str, DriverEntry] = {}

    def register(self, scheme: str, driver: DriverEntry) -> str:
        """注册驱动，返回规范名；同名注册会覆盖旧项"""
        name = canonical_name(scheme)
        if isinstance(driver, str) and ":" not in driver:
            raise SchemeLoadError(
                f"惰性驱动引用必须是 'module:attr' 形式: {driver}", scheme=scheme,
            )
        if name in self._entries:
            logger.warning("覆盖已注册的方案驱动: %s", name)
        self._entries[name] = driver
        return name

    def names(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, scheme: str) -> bool:
        try:
            return canonical_name(scheme) in self._entries
        except InvalidSchemeName:
            return False

    def resolve(self, scheme: str) -> type[Scheme]:
        """解析 scheme 为驱动类（不实例化）

        Raises:
            InvalidSchemeName: scheme 格式非法
            UnsupportedScheme: 未注册
            SchemeUnavailable: 驱动模块在本镜像中不存在
            SchemeLoadError: 注册项不是 Scheme 子类
        """
        name = canonical_name(scheme)
        entry = self._entries.get(name)
        if entry is None:
            raise UnsupportedScheme(scheme, name)
        if isinstance(entry, str):
            entry = self._load(scheme, entry)
            self._entries[name] = entry
        if not (isinstance(entry, type) and issubclass(entry, Scheme)):
            raise SchemeLoadError(
                f"scheme '{scheme}' 的驱动 {name} 不是 Scheme 子类: {entry!r}",
                scheme=scheme,
            )
        return entry

    @staticmethod
    def _load(scheme: str, reference: str) -> type[Scheme]:
        module_name, _, attr = reference.partition(":")
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            # 仅当缺的正是驱动模块（或其上级包）时才算"不可用"，
            # 驱动自身依赖缺失属于加载错误
            if e.name and (module_name == e.name or module_name.startswith(e.name + ".")):
                raise SchemeUnavailable(scheme, module_name) from e
            raise SchemeLoadError(
                f"加载 scheme '{scheme}' 的驱动 {reference} 出错: {e}", scheme=scheme,
            ) from e
        driver = getattr(module, attr, None)
        if driver is None:
            raise SchemeLoadError(
                f"模块 {module_name} 中没有驱动 {attr}", scheme=scheme,
            )
        logger.debug("已加载方案驱动 %s -> %s", scheme, reference)
        return driver  # type: ignore[no-any-return]


def default_registry() -> SchemeRegistry:
    """内置方案族的注册表，进程启动时构建"""
    registry = SchemeRegistry()
    registry.register("perl5", "imagerunner.schemes.perl5:Perl5")
    registry.register("perl5.make", "imagerunner.schemes.perl5:Perl5Make")
    return registry


def load_plugins(plugin_names: list[str], registry: SchemeRegistry) -> None:
    """按模块名加载方案插件

    插件模块需提供 register(registry) 函数，在其中调用 registry.register()。
    """
    for name in plugin_names:
        try:
            mod = importlib.import_module(name)
        except ImportError as e:
            raise SchemeLoadError(f"加载方案插件失败: {name}: {e}", plugin=name) from e
        register = getattr(mod, "register", None)
        if not callable(register):
            raise SchemeLoadError(f"方案插件 '{name}' 没有 register() 函数", plugin=name)
        register(registry)
        logger.info("方案插件已加载: %s", name)


def build_task(
    spec: TaskSpec, *,
    injector: str,
    workarea: str,
    registry: SchemeRegistry,
    executor: CommandExecutor | None = None,
) -> Task:
    """根据任务描述构造可调度的任务

    scheme 必须先解析成功，任务才会被构造。
    """
    if spec.kind == KIND_DISCOVER:
        from imagerunner.core.discover import Discovery
        return Discovery(
            scheme=spec.scheme, path=spec.path, platforms=list(spec.platforms),
            job_id=spec.job_id, registry=registry,
            injector=injector, workarea=workarea, executor=executor,
        )

    driver_cls = registry.resolve(spec.scheme)
    return driver_cls(
        injector=injector,
        workarea=workarea,
        scheme=spec.scheme,
        path=spec.path,
        request=spec.config,
        request_id=spec.job_id,
        executor=executor,
    )
