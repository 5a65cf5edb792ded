"""核心数据模型

任务描述 (TaskSpec)、平台信息 (Platform)、探测结果 (Guest)、
执行报告 (Report) 以及上传结果 (UploadResult) 集中定义于此。
Guest 与 Report 是可上传的 XML 文档，统一通过 write_to() 序列化。
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, BinaryIO
from xml.sax.saxutils import escape as xml_escape
from xml.sax.saxutils import quoteattr as xml_quoteattr

from imagerunner.core.exceptions import ConfigurationError

# 报告的媒体类型
REPORT_MEDIA_TYPE = "application/xml"

# 任务类型
KIND_TEST = "test"
KIND_DISCOVER = "discover"

# 无法区分虚拟化环境，探测结果一律视为 local，由宿主侧驱动修正
GUEST_DRIVER_LOCAL = "local"


# =========================================================================
# 任务描述
# =========================================================================


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    return None


@dataclass(frozen=True)
class TaskSpec:
    """注入配置中的一个任务段

    path 为空表示使用系统默认（如 PATH 上的解释器）。
    platforms 仅对 discover 任务有意义，每项是一个待探测的平台目标。
    """

    scheme: str
    path: str
    job_id: int
    config: str = ""
    kind: str = KIND_TEST
    platforms: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, section: str = "task") -> TaskSpec:
        """从配置字典构建并校验，缺项时抛 ConfigurationError"""
        if not isinstance(data, dict):
            raise ConfigurationError(f"配置段 [{section}] 必须是映射", section=section)

        kind = str(data.get("task") or KIND_TEST).lower()
        if kind not in (KIND_TEST, KIND_DISCOVER):
            raise ConfigurationError(
                f"不支持的任务类型 {section}.task={data.get('task')!r}",
                section=section,
            )

        scheme = data.get("scheme")
        if not scheme or not isinstance(scheme, str):
            raise ConfigurationError(f"缺少配置项 {section}.scheme", section=section)

        if "path" not in data:
            raise ConfigurationError(
                f"缺少配置项 {section}.path", section=section, scheme=scheme,
            )
        path = data.get("path")
        path = "" if path is None else str(path)

        config = data.get("config") or ""
        if kind == KIND_TEST and not config:
            raise ConfigurationError(
                f"缺少配置项 {section}.config", section=section, scheme=scheme,
            )

        job_id = _positive_int(data.get("job_id"))
        if job_id is None:
            raise ConfigurationError(
                f"配置项 {section}.job_id 缺失或不是正整数: {data.get('job_id')!r}",
                section=section, scheme=scheme,
            )

        platforms: tuple[str, ...] = ()
        if kind == KIND_DISCOVER:
            raw = data.get("platforms")
            if not isinstance(raw, list) or not raw:
                raise ConfigurationError(
                    f"discover 任务需要非空的 {section}.platforms 列表",
                    section=section, scheme=scheme, job_id=job_id,
                )
            platforms = tuple("" if p is None else str(p) for p in raw)

        return cls(
            scheme=scheme, path=path, job_id=job_id, config=str(config),
            kind=kind, platforms=platforms,
        )


# =========================================================================
# XML 文档
# =========================================================================


class XmlDocument(ABC):
    """可上传的 XML 文档基类"""

    @abstractmethod
    def to_xml(self) -> str:
        """返回完整的 XML 文本"""

    def write_to(self, buffer: BinaryIO) -> int:
        """以 UTF-8 写入缓冲区，返回写入的字节数"""
        data = self.to_xml().encode("utf-8")
        buffer.write(data)
        return len(data)


def _xml_header() -> str:
    return '<?xml version="1.0" encoding="UTF-8"?>\n'


# XML 1.0 不允许的 C0 控制字符（make 输出中常见 ANSI 颜色码的 ESC）
_XML_INVALID_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _xml_text(value: str) -> str:
    return xml_escape(_XML_INVALID_CHARS.sub("", value))


@dataclass
class Platform:
    """一次平台探测得到的事实集合（例如某个已安装的解释器）"""

    scheme: str
    path: str = ""
    facts: dict[str, str] = field(default_factory=dict)

    def to_xml(self, indent: str = "  ") -> str:
        lines = [
            f"{indent}<platform scheme={xml_quoteattr(self.scheme)}"
            f" path={xml_quoteattr(self.path)}>",
        ]
        for name in sorted(self.facts):
            lines.append(
                f"{indent}  <fact name={xml_quoteattr(name)}>"
                f"{_xml_text(str(self.facts[name]))}</fact>",
            )
        lines.append(f"{indent}</platform>")
        return "\n".join(lines) + "\n"


@dataclass
class Guest(XmlDocument):
    """探测结果汇总：虚拟化驱动标记 + 按目标顺序排列的平台列表"""

    driver: str = GUEST_DRIVER_LOCAL
    params: dict[str, str] = field(default_factory=dict)
    platforms: list[Platform] = field(default_factory=list)

    def add_platform(self, platform: Platform) -> None:
        self.platforms.append(platform)

    def to_xml(self) -> str:
        body = "".join(
            f"  <param name={xml_quoteattr(k)}>{_xml_text(str(v))}</param>\n"
            for k, v in sorted(self.params.items())
        )
        body += "".join(p.to_xml() for p in self.platforms)
        return (
            _xml_header()
            + f"<guest driver={xml_quoteattr(self.driver)}>\n"
            + body
            + "</guest>\n"
        )


@dataclass
class CommandRecord:
    """驱动执行的一条命令及其输出"""

    cmd: str
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


@dataclass
class Report(XmlDocument):
    """单个测试任务的执行报告"""

    scheme: str
    job_id: int
    request: str = ""
    status: str = "unknown"  # "pass" | "fail" | "unknown"
    platform: Platform | None = None
    commands: list[CommandRecord] = field(default_factory=list)

    def add_command(self, record: CommandRecord) -> None:
        self.commands.append(record)

    def to_xml(self) -> str:
        parts = [
            _xml_header(),
            f"<report scheme={xml_quoteattr(self.scheme)}"
            f' job_id="{self.job_id}"'
            f" request={xml_quoteattr(self.request)}"
            f" status={xml_quoteattr(self.status)}>\n",
        ]
        if self.platform is not None:
            parts.append(self.platform.to_xml())
        for c in self.commands:
            parts.append(
                f"  <command cmd={xml_quoteattr(c.cmd)}"
                f' returncode="{c.returncode}">\n'
                f"    <stdout>{_xml_text(c.stdout)}</stdout>\n"
                f"    <stderr>{_xml_text(c.stderr)}</stderr>\n"
                "  </command>\n",
            )
        parts.append("</report>\n")
        return "".join(parts)


# =========================================================================
# 上传结果
# =========================================================================


@dataclass
class UploadResult:
    """一次报告上传的结果"""

    job_id: int
    url: str
    status: str  # "success" | "skipped"
    size: int = 0
    http_status: int | None = None
