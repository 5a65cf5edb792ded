"""镜像配置

注入目录中的 image.yml 描述本次作业，示例:

    class: imagerunner.Manager
    version: "0.11"
    server_uri: http://10.0.2.2/
    tasks:
      - scheme: perl5.make
        path: /usr/bin/perl
        config: request-512311.yml
        job_id: 512311

单个任务也可以写成 task: {...} 映射。配置启动时加载一次，之后只读。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from imagerunner.core.exceptions import ConfigurationError
from imagerunner.core.models import TaskSpec
from imagerunner.utils.net import validate_url_scheme
from imagerunner.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

# 配置文件必须与本实现的身份完全一致
CONFIG_CLASS = "imagerunner.Manager"
CONFIG_VERSION = "0.11"

DEFAULT_IMAGE_CONF = "image.yml"


@dataclass(frozen=True)
class ImageConfig:
    """image.yml 的内容"""

    class_name: str
    version: str
    server_uri: str
    tasks: tuple[TaskSpec, ...]
    lib: str = ""
    plugins: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageConfig:
        """从字典构建并校验"""
        if not data:
            raise ConfigurationError("镜像配置为空")

        server_uri = str(data.get("server_uri") or "")
        if not server_uri:
            raise ConfigurationError("镜像配置缺少 server_uri")
        validate_url_scheme(server_uri, context="server_uri")

        raw_tasks: list[tuple[str, Any]] = []
        if data.get("task") is not None:
            raw_tasks.append(("task", data["task"]))
        tasks_value = data.get("tasks")
        if tasks_value is not None:
            if not isinstance(tasks_value, list):
                raise ConfigurationError("tasks 必须是列表")
            raw_tasks.extend((f"tasks[{i}]", t) for i, t in enumerate(tasks_value))
        if not raw_tasks:
            raise ConfigurationError("镜像配置中缺少 task / tasks 段")

        plugins = data.get("plugins") or []
        if not isinstance(plugins, list):
            raise ConfigurationError("plugins 必须是模块名列表")

        cfg = cls(
            class_name=str(data.get("class") or ""),
            version=str(data.get("version") or ""),
            server_uri=server_uri,
            tasks=tuple(TaskSpec.from_dict(t, section=s) for s, t in raw_tasks),
            lib=str(data.get("lib") or ""),
            plugins=tuple(str(p) for p in plugins),
        )
        cfg.check_identity()
        return cfg

    @classmethod
    def from_file(cls, path: str | Path) -> ImageConfig:
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise ConfigurationError(f"无法加载镜像配置 {path}: {e}", path=str(path)) from e
        logger.info("镜像配置已加载: %s", path)
        return cls.from_dict(data)

    def check_identity(self) -> None:
        if self.class_name != CONFIG_CLASS:
            raise ConfigurationError(
                f"配置文件与 {CONFIG_CLASS} 不兼容 (class={self.class_name!r})",
            )
        if self.version != CONFIG_VERSION:
            raise ConfigurationError(
                f"配置文件版本 {self.version!r} 与当前版本 {CONFIG_VERSION} 不兼容",
            )


@dataclass
class ManagerOptions:
    """Manager 的启动参数

    no_server 仅用于离线测试本管线：跳过存活探测与报告 PUT，
    但仍会序列化报告并计算上传地址。必须显式开启。
    """

    injector: str
    workarea: str = ""
    image_conf: str = DEFAULT_IMAGE_CONF
    no_server: bool = False
    timeout: float | None = None
