"""phaseforge.yml 配置

文件缺失时全部取默认值；未识别的键原样保留在 Config.extra，
供配方模块读取自己的设置（如镜像地址）。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any

import yaml

from phaseforge.core.exceptions import ConfigError
from phaseforge.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "phaseforge.yml"


@dataclass
class Config:
    store_dir: str = "store"
    work_dir: str = "build"
    index_file: str = "store/index.yml"
    recipe_modules: list[str] = field(default_factory=list)
    git_command: str = "git"
    # 失败后保留工作树便于排查；暂存输出总会被丢弃
    keep_failed: bool = False
    max_workers: int = 4
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        try:
            raw = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"无法读取配置文件 {path}: {e}") from e
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Config:
        names = {f.name for f in fields(cls)} - {"extra"}
        known = {k: v for k, v in raw.items() if k in names}
        modules = known.get("recipe_modules")
        if isinstance(modules, str):
            known["recipe_modules"] = [modules]
        cfg = cls(**known, extra={k: v for k, v in raw.items() if k not in names})
        cfg.validate()
        return cfg

    def validate(self) -> None:
        problems: list[str] = []
        for key in ("store_dir", "work_dir", "index_file", "git_command"):
            value = getattr(self, key)
            if not isinstance(value, str) or not value:
                problems.append(f"{key} 必须是非空字符串")
        if not isinstance(self.recipe_modules, list) or not all(
            isinstance(m, str) for m in self.recipe_modules
        ):
            problems.append(f"recipe_modules 必须是列表: {self.recipe_modules!r}")
        if not isinstance(self.keep_failed, bool):
            problems.append("keep_failed 必须是布尔值")
        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int) \
                or self.max_workers < 1:
            problems.append(f"max_workers 必须是正整数: {self.max_workers!r}")
        if problems:
            raise ConfigError(f"配置无效: {'; '.join(problems)}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_current: Config | None = None


def get_config() -> Config:
    """当前进程的配置；入口未调用 init_config 时为默认值"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_FILE) -> Config:
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s (recipe_modules=%s)", path, _current.recipe_modules)
    return _current
