"""构建命令: build / assemble / builds / serve"""

from __future__ import annotations

import click

from phaseforge.core.exceptions import PhaseForgeError


def register(main: click.Group) -> None:
    main.add_command(build)
    main.add_command(assemble)
    main.add_command(builds)
    main.add_command(serve)


@click.command()
@click.argument("name")
@click.option("--no-inputs", is_flag=True, help="不自动构建输入包（输入须已可用）")
@click.option("--force", is_flag=True, help="输入包已可用也重新构建")
def build(name: str, no_inputs: bool, force: bool) -> None:
    """构建包并输出各输出目录"""
    from phaseforge.cli import _svc, fail
    try:
        result = _svc().build.build(name, with_inputs=not no_inputs, force=force)
    except PhaseForgeError as e:
        fail(e)
    if not result.success:
        where = f" (阶段 {result.failed_phase})" if result.failed_phase else ""
        raise click.ClickException(f"构建失败: {name}{where}: {result.message}")
    click.echo(f"构建成功: {result.package}-{result.version} ({result.duration:.1f}s)")
    for output, path in result.outputs.items():
        click.echo(f"{output}\t{path}")


@click.command()
@click.argument("dest")
@click.argument("sources", nargs=-1, required=True)
@click.option("--prune", multiple=True, help="组装后删除的相对路径（可多次指定）")
def assemble(dest: str, sources: tuple[str, ...], prune: tuple[str, ...]) -> None:
    """把若干 "包:输出" 组装到 DEST，后列出的来源覆盖前者"""
    from phaseforge.cli import _svc, fail
    try:
        path = _svc().build.assemble(dest, list(sources), list(prune))
    except PhaseForgeError as e:
        fail(e)
    click.echo(f"组装完成: {path}")


@click.command()
def builds() -> None:
    """列出构建索引中的记录"""
    from phaseforge.cli import _svc
    items = _svc().build.list_builds()
    if not items:
        click.echo("构建索引为空。")
        return
    for b in items:
        outputs = ", ".join(f"{k}={v}" for k, v in (b.get("outputs") or {}).items())
        click.echo(f"  {b['name']:20s} {b.get('version', ''):12s} {outputs}")


@click.command()
@click.option("--host", default="127.0.0.1", help="监听地址")
@click.option("--port", default=8890, help="监听端口")
def serve(host: str, port: int) -> None:
    """启动 JSON API 服务"""
    from phaseforge.web.app import run_server
    run_server(host=host, port=port)
