"""任务与方案驱动接口

Manager 只通过这里定义的抽象接口驱动任务：
  - Task:   prepare() -> execute() -> report
  - Scheme: Task + discover(target)，每个方案族 (perl5, perl5.make ...) 一个子类
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imagerunner.core.models import Platform, XmlDocument
    from imagerunner.utils.shell import CommandExecutor


class Task(ABC):
    """可被 Manager 调度的工作单元"""

    job_id: int = 0
    scheme: str = ""
    report: XmlDocument | None = None

    @abstractmethod
    def prepare(self) -> None:
        """准备阶段，失败抛异常"""

    @abstractmethod
    def execute(self) -> None:
        """执行阶段，成功后 report 应被填充"""


class Scheme(Task):
    """方案驱动基类

    参数:
        injector: 注入目录（只读）
        workarea: 可写的临时工作目录，由 Manager 独占并按路径交给驱动
        scheme: 原始 scheme 标识，如 "perl5.make"
        path: 被测对象路径，空串表示使用系统默认
        request: 作业请求描述文件（相对注入目录）
        request_id: 作业 ID，报告上传地址的最后一段
    """

    def __init__(
        self, *,
        injector: str = "",
        workarea: str = "",
        scheme: str,
        path: str = "",
        request: str = "",
        request_id: int = 0,
        executor: CommandExecutor | None = None,
    ) -> None:
        if executor is None:
            from imagerunner.utils.shell import get_executor
            executor = get_executor()
        self.injector = injector
        self.workarea = workarea
        self.scheme = scheme
        self.path = path
        self.request = request
        self.request_id = request_id
        self.job_id = request_id
        self.executor = executor
        self.report = None

    @abstractmethod
    def discover(self, target: str = "") -> Platform | None:
        """探测一个平台目标，探测不到返回 None"""

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(scheme={self.scheme!r}, path={self.path!r}, "
            f"request_id={self.request_id})"
        )
