"""运行环境校验 — 注入目录、工作目录、配置文件的存在性与权限"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from imagerunner.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def check_injector(injector: str) -> Path:
    """注入目录必须存在且可读"""
    if not injector:
        raise ConfigurationError("未提供注入目录 (injector)")
    p = Path(injector)
    if not p.is_dir():
        raise ConfigurationError(f"注入目录不存在: {injector}", injector=injector)
    if not os.access(p, os.R_OK | os.X_OK):
        raise ConfigurationError(f"注入目录不可读，权限不足: {injector}", injector=injector)
    return p


def check_workarea(workarea: str = "") -> Path:
    """工作目录必须存在且可读写；未提供时自动创建临时目录"""
    if not workarea:
        workarea = tempfile.mkdtemp(prefix="imagerunner-")
        logger.info("未指定工作目录，使用临时目录: %s", workarea)
    p = Path(workarea)
    if not p.is_dir():
        raise ConfigurationError(f"工作目录不存在: {workarea}", workarea=workarea)
    if not os.access(p, os.R_OK | os.W_OK | os.X_OK):
        raise ConfigurationError(f"工作目录权限不足（需要读写）: {workarea}", workarea=workarea)
    return p


def find_image_conf(injector: Path, name: str) -> Path:
    """在注入目录中定位镜像配置文件"""
    if not name:
        raise ConfigurationError("未指定镜像配置文件名")
    conf = injector / name
    if not conf.is_file():
        raise ConfigurationError(f"注入目录中找不到 {name}", path=str(conf))
    if not os.access(conf, os.R_OK):
        raise ConfigurationError(f"没有读取 {name} 的权限", path=str(conf))
    return conf


def check_lib_dir(injector: Path, rel: str) -> Path:
    """注入目录中的插件目录（相对路径，'/' 分隔）必须存在且可读"""
    lib_dir = injector.joinpath(*[part for part in rel.split("/") if part])
    if injector.resolve() not in lib_dir.resolve().parents and lib_dir.resolve() != injector.resolve():
        raise ConfigurationError(f"插件目录必须位于注入目录内: {rel}", lib=rel)
    if not lib_dir.is_dir():
        raise ConfigurationError(f"注入目录中的插件目录不存在: {rel}", lib=rel)
    if not os.access(lib_dir, os.R_OK | os.X_OK):
        raise ConfigurationError(f"注入目录中的插件目录不可读: {rel}", lib=rel)
    return lib_dir
