"""演示配方: Lisp 引擎库 -> 浏览器应用 -> 发布包

  lisp-engine      copy 构建系统 + compile 阶段，输出拆为 out（源码与系统定义）
                   和 lib（编译产物）；编译器按系统名生成 engine--system.fasl，
                   下游加载器要的是 engine.fasl，由产物约定显式补齐
  browser          继承 lisp-engine，换成 gnu 流水线并改写 build / install，
                   输入为 lisp-engine:lib
  browser-bundle   只做组装: 合并两者的 out，裁掉构建描述文件
"""

from __future__ import annotations

from pathlib import Path

from phaseforge.core.build_systems import shell_phase, standard_pipeline
from phaseforge.core.descriptor import Overrides, PackageDescriptor, derive
from phaseforge.core.linker import assemble_phase
from phaseforge.core.models import ArtifactContract, SourceSpec, SplitRule
from phaseforge.core.phases import Pipeline, add_after, delete, replace

SOURCE_ROOT = Path(__file__).resolve().parent / "browser_src"
FASL_DIR = "lib/common-lisp/engine"

lisp_engine = PackageDescriptor(
    name="lisp-engine",
    version="3.1.0",
    source=SourceSpec(str(SOURCE_ROOT), select="tree"),
    build_system="copy",
    phases=standard_pipeline("copy").apply([
        add_after("unpack", "compile", shell_phase("sh", "build.sh", "compile", "{work}/fasl")),
    ]),
    outputs=("out", "lib"),
    build_flags={
        "install_plan": {
            "source": "share/common-lisp/source/engine",
            "engine.asd": "share/common-lisp/systems/engine.asd",
            "fasl": FASL_DIR,
        },
    },
    split_rules=(SplitRule("lib", ("lib/*",)),),
    artifact_contracts=(
        ArtifactContract(
            "lib", f"{FASL_DIR}/engine--system.fasl", f"{FASL_DIR}/engine.fasl",
        ),
    ),
)

browser = derive(lisp_engine, Overrides(
    name="browser",
    version_suffix="gui",
    build_system="gnu",
    phases=standard_pipeline("gnu"),
    phase_overrides=[
        delete("configure"),
        delete("check"),
        replace("build", shell_phase(
            "sh", "build.sh", "image",
            "{inputs[engine]}/" + FASL_DIR + "/engine.fasl", "{work}/browser-image",
        )),
        replace("install", shell_phase("sh", "build.sh", "install", "{out}")),
    ],
    inputs={"engine": "lisp-engine:lib"},
    outputs=("out",),
    build_flags={"env": {"LISP": "sbcl"}},
    split_rules=(),
    artifact_contracts=(),
))

browser_bundle = PackageDescriptor(
    name="browser-bundle",
    version=browser.version,
    build_system="trivial",
    phases=Pipeline.of(
        ("assemble", assemble_phase(
            ["engine-src", "app"],
            prune=["share/common-lisp/systems/engine.asd"],
        )),
    ),
    inputs={"engine-src": "lisp-engine:out", "app": "browser:out"},
)

PACKAGES = [lisp_engine, browser, browser_bundle]
