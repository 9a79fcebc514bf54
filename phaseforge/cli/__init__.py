"""phaseforge 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os

import click

from phaseforge import __version__
from phaseforge.core.config import init_config
from phaseforge.core.exceptions import PhaseForgeError
from phaseforge.services.container import ServiceContainer, get_container, reset_container
from phaseforge.utils.logger import setup_logging


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


def fail(exc: PhaseForgeError) -> None:
    """把框架异常转换为 CLI 错误（退出码 1）"""
    raise click.ClickException(f"[{exc.code}] {exc}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", "config_path", default="phaseforge.yml",
    envvar="PHASEFORGE_CONFIG", show_default=True, help="配置文件路径（不存在时使用默认配置）",
)
def main(config_path: str) -> None:
    """phaseforge - 基于构建阶段的声明式打包编排器"""
    setup_logging(
        level=os.getenv("PHASEFORGE_LOG_LEVEL", "INFO"),
        json_output=os.getenv("PHASEFORGE_LOG_JSON", "") == "1",
    )
    try:
        init_config(config_path)
    except PhaseForgeError as e:
        fail(e)
    reset_container()


# 注册各领域子命令
from phaseforge.cli.cmd_build import register as _reg_build  # noqa: E402
from phaseforge.cli.cmd_packages import register as _reg_packages  # noqa: E402

_reg_packages(main)
_reg_build(main)
