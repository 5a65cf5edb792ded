"""报告上传器 — 序列化任务报告并 PUT 到支撑服务器

上传地址 = server_uri 按 RFC 3986 相对解析 job_id，
即替换最后一段路径：http://host/base + 512311 -> http://host/512311。
"""

from __future__ import annotations

import http.client
import io
import logging
import urllib.error
import urllib.request
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urljoin, urlsplit, urlunsplit

from imagerunner.core.exceptions import (
    NoReport,
    ReportDeliveryFailed,
    SerializationFailed,
    ServerUnreachable,
)
from imagerunner.core.models import REPORT_MEDIA_TYPE, UploadResult

if TYPE_CHECKING:
    from imagerunner.core.task import Task

logger = logging.getLogger(__name__)

# 网络层错误；服务器返回畸形响应时 http.client 抛 HTTPException
_TRANSPORT_ERRORS = (OSError, ValueError, http.client.HTTPException)


def report_uri(server_uri: str, job_id: int) -> str:
    """计算任务报告的上传地址（纯函数，重复调用结果一致）"""
    parts = urlsplit(server_uri)
    base = urlunsplit((parts.scheme, parts.netloc, parts.path or "/", "", ""))
    return urljoin(base, str(job_id))


# =========================================================================
# HTTP 传输
# =========================================================================


class Transport(Protocol):
    """HTTP 传输协议，测试时注入假实现"""

    def get(self, url: str) -> int:
        """GET 请求，返回状态码；网络错误抛 OSError"""
        ...

    def send(self, request: urllib.request.Request) -> int:
        """发送请求，返回状态码；网络错误抛 OSError"""
        ...


class HttpTransport:
    """基于 urllib.request 的默认传输；超时由调用方显式设置"""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def _open(self, request: urllib.request.Request) -> int:
        try:
            if self.timeout is None:
                resp = urllib.request.urlopen(request)  # nosec B310
            else:
                resp = urllib.request.urlopen(request, timeout=self.timeout)  # nosec B310
        except urllib.error.HTTPError as e:
            # 非 2xx 由调用方按状态码处理
            return e.code
        with resp:
            return int(resp.status)

    def get(self, url: str) -> int:
        return self._open(urllib.request.Request(url, method="GET"))

    def send(self, request: urllib.request.Request) -> int:
        return self._open(request)


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def check_server(server_uri: str, transport: Transport) -> None:
    """启动时的存活探测

    Raises:
        ServerUnreachable: 网络错误或非 2xx
    """
    try:
        status = transport.get(server_uri)
    except _TRANSPORT_ERRORS as e:
        raise ServerUnreachable(server_uri, str(e)) from e
    if not _is_success(status):
        raise ServerUnreachable(server_uri, f"HTTP {status}")
    logger.info("支撑服务器可达: %s", server_uri)


# =========================================================================
# 上传器
# =========================================================================


class ReportUploader:
    """把任务报告上传到 <server_uri>/<job_id>"""

    def __init__(
        self,
        server_uri: str,
        *,
        no_server: bool = False,
        transport: Transport | None = None,
    ) -> None:
        self.server_uri = server_uri
        self.no_server = no_server
        self.transport: Transport = transport or HttpTransport()

    def uri_for(self, task: Task) -> str:
        return report_uri(self.server_uri, task.job_id)

    @staticmethod
    def serialize(task: Task) -> bytes:
        """序列化任务报告

        Raises:
            NoReport: 任务没有报告
            SerializationFailed: 序列化结果为空
        """
        if task.report is None:
            raise NoReport(task.job_id)
        buffer = io.BytesIO()
        size = task.report.write_to(buffer)
        body = buffer.getvalue()
        if not size or not body:
            raise SerializationFailed(task.job_id)
        return body

    def build_request(self, task: Task) -> urllib.request.Request:
        """构造 PUT 请求（不发送）"""
        body = self.serialize(task)
        return urllib.request.Request(
            self.uri_for(task),
            data=body,
            method="PUT",
            headers={
                "Content-Type": REPORT_MEDIA_TYPE,
                "Content-Length": str(len(body)),
            },
        )

    def upload(self, task: Task) -> UploadResult:
        """上传单个任务的报告

        Raises:
            NoReport / SerializationFailed: 没有可发送的内容
            ReportDeliveryFailed: 网络错误或非 2xx
        """
        request = self.build_request(task)
        url = request.full_url
        size = len(request.data or b"")  # type: ignore[arg-type]

        if self.no_server:
            logger.info("no_server 模式，跳过上传: job=%s -> %s (%d 字节)", task.job_id, url, size)
            return UploadResult(job_id=task.job_id, url=url, status="skipped", size=size)

        try:
            status = self.transport.send(request)
        except _TRANSPORT_ERRORS as e:
            raise ReportDeliveryFailed(task.job_id, url, str(e)) from e
        if not _is_success(status):
            raise ReportDeliveryFailed(task.job_id, url, f"HTTP {status}")

        logger.info("报告已上传: job=%s -> %s (%d 字节, HTTP %d)", task.job_id, url, size, status)
        return UploadResult(
            job_id=task.job_id, url=url, status="success",
            size=size, http_status=status,
        )
