"""构建服务: 查找包 / 构建（含输入）/ 组装 / 查询构建记录

服务层把核心抛出的 PhaseForgeError 收敛为失败的 BuildResult，
供 CLI 和 Web 统一展示；查找不存在的包仍然抛 PackageNotFoundError。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from phaseforge.core.builder import PackageBuild
from phaseforge.core.descriptor import PackageDescriptor
from phaseforge.core.exceptions import PhaseForgeError, ValidationError
from phaseforge.core.linker import assemble
from phaseforge.core.models import BuildResult, InputRef
from phaseforge.core.recipes import RecipeBook
from phaseforge.core.session import BuildSession

logger = logging.getLogger(__name__)


class BuildService:
    """包构建生命周期管理"""

    def __init__(self, book: RecipeBook, session: BuildSession) -> None:
        self.book = book
        self.session = session
        session.expect_versions({d.name: d.version for d in book})

    # ---- 查询 ----

    def list_all(self) -> list[dict[str, Any]]:
        return [
            {**d.describe(), "built": self.session.is_available(d.name)}
            for d in self.book
        ]

    def get(self, name: str) -> PackageDescriptor | None:
        if name not in self.book:
            return None
        return self.book.get(name)

    def list_builds(self) -> list[dict[str, Any]]:
        return self.session.index.list_all()

    # ---- 构建 ----

    def build(self, name: str, *, with_inputs: bool = True, force: bool = False) -> BuildResult:
        """构建 name；with_inputs 时先构建尚不可用的输入包

        force=True 时输入包也全部重建。
        """
        order = self.book.dependency_order(name) if with_inputs else [name]
        for dep in order[:-1]:
            if not force and self.session.is_available(dep):
                logger.info("输入已可用，跳过: %s", dep)
                continue
            dep_result = self._build_one(self.book.get(dep))
            if not dep_result.success:
                descriptor = self.book.get(name)
                return BuildResult(
                    package=name, version=descriptor.version, status="failed",
                    message=f"输入包 {dep} 构建失败: {dep_result.message}",
                )
        return self._build_one(self.book.get(name))

    def _build_one(self, descriptor: PackageDescriptor) -> BuildResult:
        build = PackageBuild(descriptor, self.session)
        try:
            return build.run()
        except PhaseForgeError:
            # 详情已由构建器记录，这里返回失败结果
            return build.result

    def build_many(self, names: Sequence[str], *, max_workers: int = 0) -> list[BuildResult]:
        """并行构建互不依赖的包（输入须已可用）"""
        names = list(dict.fromkeys(names))
        for name in names:
            deps = set(self.book.dependency_order(name)[:-1])
            related = deps & set(names)
            if related:
                raise ValidationError(
                    f"{name} 依赖同批次的 {', '.join(sorted(related))}，需按顺序构建"
                )
        workers = max_workers or self.session.config.max_workers
        with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
            futures = [
                pool.submit(self._build_one, self.book.get(n)) for n in names
            ]
            return [f.result() for f in futures]

    # ---- 组装 ----

    def assemble(self, dest: str | Path, sources: Sequence[str], prune: Sequence[str] = ()) -> Path:
        """按 "包:输出" 列表组装目录，后者覆盖前者"""
        refs = [InputRef.parse(s) for s in sources]
        if not refs:
            raise ValidationError("至少需要一个组装来源")
        pairs = [
            (self.book.get(r.package) if r.package in self.book else r.package, r.output)
            for r in refs
        ]
        return assemble(pairs, prune, dest, session=self.session)
