"""包查询命令: list / show"""

from __future__ import annotations

import click

from phaseforge.core.exceptions import PhaseForgeError


def register(main: click.Group) -> None:
    main.add_command(list_packages)
    main.add_command(show)


@click.command(name="list")
def list_packages() -> None:
    """列出配方中定义的包"""
    from phaseforge.cli import _svc, fail
    try:
        items = _svc().build.list_all()
    except PhaseForgeError as e:
        fail(e)
    if not items:
        click.echo("没有已定义的包（检查配置中的 recipe_modules）。")
        return
    for p in items:
        mark = "*" if p["built"] else " "
        outputs = ",".join(p["outputs"])
        click.echo(f"{mark} {p['name']:20s} {p['version']:12s} outputs={outputs}")


@click.command()
@click.argument("name")
def show(name: str) -> None:
    """显示包的阶段、输入与输出"""
    from phaseforge.cli import _svc, fail
    try:
        descriptor = _svc().recipes.get(name)
    except PhaseForgeError as e:
        fail(e)
    info = descriptor.describe()
    click.echo(f"{info['name']} {info['version']} (build_system={info['build_system']})")
    if info["parent"]:
        click.echo(f"继承自: {info['parent']}")
    click.echo("阶段:")
    for i, phase in enumerate(info["phases"], 1):
        click.echo(f"  {i:2d}. {phase}")
    for label, key in (("输入", "inputs"), ("构建期输入", "native_inputs")):
        if info[key]:
            click.echo(f"{label}:")
            for k, ref in info[key].items():
                click.echo(f"  {k} <- {ref}")
    click.echo(f"输出: {', '.join(info['outputs'])}")
