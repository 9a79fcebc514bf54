"""包描述符与继承解析测试"""

from __future__ import annotations

import pytest

from phaseforge.core.descriptor import Overrides, PackageDescriptor, derive
from phaseforge.core.exceptions import (
    OutputMappingUnresolved,
    PhaseOverrideConflict,
    ValidationError,
)
from phaseforge.core.models import ArtifactContract, InputRef, SourceSpec, SplitRule
from phaseforge.core.phases import Pipeline, add_after, delete, replace


def _noop(ctx) -> None:
    return None


def _install_app(ctx) -> None:
    return None


@pytest.fixture()
def engine() -> PackageDescriptor:
    return PackageDescriptor(
        name="engine",
        version="3.1",
        source=SourceSpec("/src/engine"),
        phases=Pipeline.of(
            ("unpack", _noop), ("configure", _noop), ("build", _noop),
            ("check", _noop), ("install", _noop),
        ),
        inputs={"cc": "gcc"},
        native_inputs={"make": "gnumake:out"},
        outputs=("out", "lib"),
        build_flags={"configure_flags": ["--enable-threads"]},
        split_rules=(SplitRule("lib", ("lib/*",)),),
        artifact_contracts=(ArtifactContract("lib", "engine--system.fasl", "engine.fasl"),),
    )


class TestPackageDescriptor:
    def test_inputs_are_parsed(self, engine: PackageDescriptor) -> None:
        assert engine.inputs["cc"] == InputRef("gcc", "out")
        assert engine.native_inputs["make"] == InputRef("gnumake", "out")
        assert set(engine.all_inputs) == {"cc", "make"}

    def test_fields_are_frozen(self, engine: PackageDescriptor) -> None:
        with pytest.raises(TypeError):
            engine.inputs["x"] = InputRef("x")  # type: ignore[index]
        with pytest.raises(AttributeError):
            engine.name = "other"  # type: ignore[misc]

    def test_list_flags_become_tuples(self, engine: PackageDescriptor) -> None:
        assert engine.build_flags["configure_flags"] == ("--enable-threads",)

    def test_full_name(self, engine: PackageDescriptor) -> None:
        assert engine.full_name == "engine-3.1"

    def test_out_required(self) -> None:
        with pytest.raises(ValidationError, match="必须包含"):
            PackageDescriptor(name="a", version="1", outputs=("lib",))

    def test_duplicate_outputs_rejected(self) -> None:
        with pytest.raises(ValidationError, match="outputs 重复"):
            PackageDescriptor(name="a", version="1", outputs=("out", "lib", "lib"))

    def test_input_native_input_clash(self) -> None:
        with pytest.raises(ValidationError, match="重名"):
            PackageDescriptor(name="a", version="1", inputs={"x": "b"}, native_inputs={"x": "c"})

    def test_split_rule_needs_declared_output(self) -> None:
        with pytest.raises(ValidationError, match="未声明的输出"):
            PackageDescriptor(
                name="a", version="1", split_rules=(SplitRule("doc", ("share/doc/*",)),),
            )

    def test_split_rule_cannot_target_out(self) -> None:
        with pytest.raises(ValidationError, match="主输出"):
            PackageDescriptor(name="a", version="1", split_rules=(SplitRule("out", ("*",)),))

    def test_contract_needs_declared_output(self) -> None:
        with pytest.raises(ValidationError, match="产物约定"):
            PackageDescriptor(
                name="a", version="1",
                artifact_contracts=(ArtifactContract("lib", "a.so.1", "a.so"),),
            )

    def test_invalid_name(self) -> None:
        with pytest.raises(ValidationError, match="非法的包名"):
            PackageDescriptor(name="a:b", version="1")

    def test_missing_version(self) -> None:
        with pytest.raises(ValidationError, match="version"):
            PackageDescriptor(name="a", version="")

    def test_check_output(self, engine: PackageDescriptor) -> None:
        engine.check_output("lib")
        with pytest.raises(OutputMappingUnresolved, match="docs"):
            engine.check_output("docs")

    def test_describe(self, engine: PackageDescriptor) -> None:
        info = engine.describe()
        assert info["phases"] == ["unpack", "configure", "build", "check", "install"]
        assert info["inputs"] == {"cc": "gcc:out"}
        assert info["build_flags"] == {"configure_flags": ["--enable-threads"]}
        assert info["source"] == {"root": "/src/engine", "select": "git"}


class TestDerive:
    def test_only_overridden_fields_change(self, engine: PackageDescriptor) -> None:
        app = derive(engine, Overrides(name="engine-app", version_suffix="gui"))
        assert app.name == "engine-app"
        assert app.version == "3.1-gui"
        assert app.parent == "engine"
        assert app.source is engine.source
        assert app.phases is engine.phases
        assert app.inputs == engine.inputs
        assert app.split_rules == engine.split_rules

    def test_base_unchanged(self, engine: PackageDescriptor) -> None:
        before = engine.describe()
        derive(engine, name="x", phase_overrides=[delete("check")], inputs={})
        assert engine.describe() == before

    def test_phase_overrides_apply_to_base_pipeline(self, engine: PackageDescriptor) -> None:
        app = derive(engine, Overrides(
            name="engine-app",
            phase_overrides=[delete("configure"), delete("check"), replace("install", _install_app)],
        ))
        assert app.phases.names == ("unpack", "build", "install")
        assert app.phases.get("install").action is _install_app

    def test_replacement_pipeline_then_overrides(self, engine: PackageDescriptor) -> None:
        app = derive(
            engine,
            name="trivial",
            phases=Pipeline.of(("build", _noop)),
            phase_overrides=[add_after("build", "wrap", _noop)],
        )
        assert app.phases.names == ("build", "wrap")

    def test_inputs_override_replaces_whole_map(self, engine: PackageDescriptor) -> None:
        app = derive(engine, name="engine-app", inputs={"engine": "engine:lib"})
        assert dict(app.inputs) == {"engine": InputRef("engine", "lib")}
        assert dict(app.native_inputs) == dict(engine.native_inputs)

    def test_chained_derivation_rejects_second_override(
        self, engine: PackageDescriptor,
    ) -> None:
        first = derive(engine, name="a", phase_overrides=[replace("install", _install_app)])
        with pytest.raises(PhaseOverrideConflict, match="install"):
            derive(first, name="b", phase_overrides=[delete("install")])

    def test_conflicting_override_set(self, engine: PackageDescriptor) -> None:
        with pytest.raises(PhaseOverrideConflict):
            derive(engine, name="a", phase_overrides=[delete("check"), replace("check", _noop)])

    def test_unknown_field(self, engine: PackageDescriptor) -> None:
        with pytest.raises(ValidationError, match="bogus"):
            derive(engine, bogus=1)

    def test_overrides_and_keywords_exclusive(self, engine: PackageDescriptor) -> None:
        with pytest.raises(ValidationError):
            derive(engine, Overrides(name="a"), version="2")

    def test_derived_outputs_revalidated(self, engine: PackageDescriptor) -> None:
        # lib 被去掉但拆分规则仍指向 lib
        with pytest.raises(ValidationError, match="lib"):
            derive(engine, name="a", outputs=("out",))

    def test_derived_outputs_with_cleared_rules(self, engine: PackageDescriptor) -> None:
        app = derive(engine, name="a", outputs=("out",), split_rules=(), artifact_contracts=())
        assert app.outputs == ("out",)
        assert app.split_rules == ()
