"""统一异常体系

所有业务异常继承 ImageError。镜像无人值守运行，异常一律向上传播直至进程退出，
CLI 层据 code 输出日志并以非零状态码结束。每个异常都携带 context
（scheme / path / job_id 等），便于在宿主侧排查。
"""

from __future__ import annotations

from typing import Any


class ImageError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = context


class ConfigurationError(ImageError):
    """注入配置缺失、无效或与当前版本不兼容"""

    code = "CONFIG_ERROR"


class ValidationError(ConfigurationError):
    """输入数据校验失败（URL 协议等）"""

    code = "VALIDATION_ERROR"


# =========================================================================
# 方案解析
# =========================================================================


class InvalidSchemeName(ImageError):
    """scheme 标识为空或格式非法"""

    code = "INVALID_SCHEME_NAME"

    def __init__(self, scheme: str) -> None:
        super().__init__(f"非法的 scheme 名称: {scheme!r}", scheme=scheme)
        self.scheme = scheme


class UnsupportedScheme(ImageError):
    """注册表中没有该 scheme 对应的驱动"""

    code = "UNSUPPORTED_SCHEME"

    def __init__(self, scheme: str, driver: str) -> None:
        super().__init__(
            f"不支持的 scheme '{scheme}'（驱动 {driver} 未注册）",
            scheme=scheme, driver=driver,
        )
        self.scheme = scheme
        self.driver = driver


class SchemeUnavailable(ImageError):
    """驱动已注册，但其模块在本镜像中不存在"""

    code = "SCHEME_UNAVAILABLE"

    def __init__(self, scheme: str, module: str) -> None:
        super().__init__(
            f"scheme '{scheme}' 在本镜像中不可用（找不到模块 {module}）",
            scheme=scheme, module=module,
        )
        self.scheme = scheme
        self.module = module


class SchemeLoadError(ImageError):
    """驱动模块可加载，但注册项不是合法的驱动类"""

    code = "SCHEME_LOAD_ERROR"


# =========================================================================
# 任务执行
# =========================================================================


class InvalidTaskError(ImageError):
    """传给 add_task 的对象不满足 Task 接口"""

    code = "INVALID_TASK"


class DiscoveryFailed(ImageError):
    """某个平台目标未能探测出平台信息"""

    code = "DISCOVERY_FAILED"

    def __init__(self, scheme: str, path: str, target: str, index: int) -> None:
        super().__init__(
            f"平台探测失败: scheme={scheme} path={path or '<默认>'} "
            f"target={target or '<默认>'} (第 {index + 1} 个目标)",
            scheme=scheme, path=path, target=target, index=index,
        )
        self.scheme = scheme
        self.path = path
        self.target = target
        self.index = index


class TaskLifecycleFailed(ImageError):
    """任务的 prepare / execute 阶段失败"""

    code = "TASK_FAILED"

    def __init__(self, phase: str, scheme: str, job_id: int, reason: str) -> None:
        super().__init__(
            f"任务 {job_id} ({scheme}) 在 {phase} 阶段失败: {reason}",
            phase=phase, scheme=scheme, job_id=job_id,
        )
        self.phase = phase
        self.scheme = scheme
        self.job_id = job_id


class ExecutionError(ImageError):
    """驱动调用的 shell 命令执行失败"""

    code = "EXECUTION_ERROR"


# =========================================================================
# 报告上传
# =========================================================================


class NoReport(ImageError):
    """任务没有可上传的报告"""

    code = "NO_REPORT"

    def __init__(self, job_id: int) -> None:
        super().__init__(f"任务 {job_id} 没有生成可上传的报告", job_id=job_id)
        self.job_id = job_id


class SerializationFailed(ImageError):
    """报告序列化结果为空"""

    code = "SERIALIZATION_FAILED"

    def __init__(self, job_id: int) -> None:
        super().__init__(f"任务 {job_id} 的报告序列化失败（输出为空）", job_id=job_id)
        self.job_id = job_id


class ReportDeliveryFailed(ImageError):
    """报告 PUT 失败：网络错误或非 2xx 响应"""

    code = "REPORT_DELIVERY_FAILED"

    def __init__(self, job_id: int, url: str, reason: str) -> None:
        super().__init__(
            f"任务 {job_id} 的报告上传失败 ({url}): {reason}",
            job_id=job_id, url=url,
        )
        self.job_id = job_id
        self.url = url


class ServerUnreachable(ImageError):
    """启动时无法连通支撑服务器"""

    code = "SERVER_UNREACHABLE"

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"无法连接支撑服务器 {url}: {reason}", url=url)
        self.url = url
