"""配方集合

描述符就是 Python 数据：配方模块在模块级定义 PackageDescriptor，
或提供 PACKAGES 列表。RecipeBook 按模块名导入并以包名索引。
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable, Iterator
from types import ModuleType

from phaseforge.core.descriptor import PackageDescriptor
from phaseforge.core.exceptions import ConfigError, PackageNotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _module_descriptors(mod: ModuleType) -> list[PackageDescriptor]:
    explicit = getattr(mod, "PACKAGES", None)
    if explicit is not None:
        return list(explicit)
    return [v for v in vars(mod).values() if isinstance(v, PackageDescriptor)]


class RecipeBook:
    """包名 -> 描述符"""

    def __init__(self, descriptors: Iterable[PackageDescriptor] = ()) -> None:
        self._packages: dict[str, PackageDescriptor] = {}
        for d in descriptors:
            self.add(d)

    @classmethod
    def from_modules(cls, module_names: Iterable[str]) -> RecipeBook:
        book = cls()
        for name in module_names:
            try:
                mod = importlib.import_module(name)
            except ImportError as e:
                raise ConfigError(f"无法导入配方模块 {name}: {e}") from e
            found = _module_descriptors(mod)
            for d in found:
                book.add(d)
            logger.info("配方模块已加载: %s (%d 个包)", name, len(found))
        return book

    def add(self, descriptor: PackageDescriptor) -> None:
        if not isinstance(descriptor, PackageDescriptor):
            raise ValidationError(f"不是包描述符: {descriptor!r}")
        existing = self._packages.get(descriptor.name)
        if existing is not None and existing is not descriptor:
            raise ValidationError(f"包名重复: {descriptor.name}")
        self._packages[descriptor.name] = descriptor

    def get(self, name: str) -> PackageDescriptor:
        try:
            return self._packages[name]
        except KeyError:
            raise PackageNotFoundError(f"包不存在: {name}") from None

    def names(self) -> list[str]:
        return sorted(self._packages)

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __iter__(self) -> Iterator[PackageDescriptor]:
        return iter(self._packages[n] for n in self.names())

    def __len__(self) -> int:
        return len(self._packages)

    def dependency_order(self, name: str) -> list[str]:
        """name 及其（本配方集合内）全部输入包，输入在前

        不在集合内的输入视为外部提供，不展开。
        """
        order: list[str] = []
        visiting: list[str] = []

        def visit(pkg: str) -> None:
            if pkg in order:
                return
            if pkg in visiting:
                cycle = " -> ".join([*visiting[visiting.index(pkg):], pkg])
                raise ValidationError(f"输入存在环: {cycle}")
            visiting.append(pkg)
            for ref in sorted(self.get(pkg).all_inputs.values(), key=str):
                if ref.package in self._packages:
                    visit(ref.package)
            visiting.pop()
            order.append(pkg)

        visit(name)
        return order
