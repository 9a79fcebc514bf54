"""服务容器: CLI 与 Web 共享同一组会话和服务

依赖关系:
  build -> session, recipes

用法:
    container = ServiceContainer(config=Config.from_file("phaseforge.yml"))
    result = container.build.build("browser")

    from phaseforge.services.container import get_container
    svc = get_container().build
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from phaseforge.core.config import Config
    from phaseforge.core.recipes import RecipeBook
    from phaseforge.core.session import BuildSession
    from phaseforge.services.build_service import BuildService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        recipes: RecipeBook | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from phaseforge.core.config import get_config
            config = get_config()
        self._config = config
        if recipes is not None:
            self._instances["recipes"] = recipes

    @property
    def config(self) -> Config:
        return self._config

    @property
    def recipes(self) -> RecipeBook:
        if "recipes" not in self._instances:
            from phaseforge.core.recipes import RecipeBook
            self._instances["recipes"] = RecipeBook.from_modules(self._config.recipe_modules)
        return self._instances["recipes"]  # type: ignore[return-value]

    @property
    def session(self) -> BuildSession:
        if "session" not in self._instances:
            from phaseforge.core.session import BuildSession
            self._instances["session"] = BuildSession(self._config)
        return self._instances["session"]  # type: ignore[return-value]

    @property
    def build(self) -> BuildService:
        if "build" not in self._instances:
            from phaseforge.services.build_service import BuildService
            self._instances["build"] = BuildService(self.recipes, self.session)
        return self._instances["build"]  # type: ignore[return-value]


_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is None:
        with _global_lock:
            if _global is None:
                _global = ServiceContainer()
    return _global


def set_container(container: ServiceContainer) -> None:
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = container


def reset_container() -> None:
    """丢弃全局容器（测试或重新加载配置后使用）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
