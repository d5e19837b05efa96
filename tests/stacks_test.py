import pytest

from conftest import CONFIG_DIR
from orgstack import stacks
from orgstack.engine import RecordingEngine
from orgstack.errors import ReferenceNotFoundError
from orgstack.resources import Environment, ResourceKind
from orgstack.stacks import Settings


def apply_foundation(store, tables):
    engine = RecordingEngine(stack="foundation", store=store)
    stacks.run_foundation(engine, Settings.load("foundation", {}), tables)
    return engine.apply()


def test_environment_defaults_to_the_stack_name():
    got = Settings.load("staging", {})
    assert got.environment == "staging"
    assert not got.is_foundation
    assert Settings.load("foundation", {}).is_foundation


def test_settings_are_coerced():
    got = Settings.load(
        "dev",
        {"include_child_environments": "true", "lookups": "strict", "foundation_stack": "org"},
    )
    assert got.include_child_environments is True
    assert got.lookups == "strict"
    assert got.foundation_stack == "org"


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        Settings.load("dev", {"lookups": "paranoid"})
    with pytest.raises(ValueError):
        Settings.load("production", {})
    with pytest.raises(ValueError):
        Settings.load("dev", {"reference_source": "s3"})


def test_environment_stack_reads_foundation_outputs(store, sample_tables):
    foundation = apply_foundation(store, sample_tables)
    assert foundation.ok
    assert set(foundation.outputs) == {"organization", "organizational_units", "accounts", "policies"}

    engine = RecordingEngine(stack="dev", store=store)
    stacks.run_environment(engine, Settings.load("dev", {}), sample_tables)
    result = engine.apply()
    assert result.ok
    assert result.outputs["environment"] == {
        "name": "dev",
        "ou_id": foundation.outputs["organizational_units"]["dev"]["id"],
    }
    assert "dev-limited-role" in result.outputs["roles"]
    [param] = engine.find(ResourceKind.SSM_PARAMETER)
    assert param.args["name"] == "/environments/dev/roles"


def test_environment_stack_needs_the_foundation(engine, sample_tables):
    with pytest.raises(ReferenceNotFoundError):
        stacks.run_environment(engine, Settings.load("dev", {}), sample_tables)


def test_child_environments_are_declared_together(store, sample_tables):
    apply_foundation(store, sample_tables)
    engine = RecordingEngine(stack="dev", store=store)
    settings = Settings.load("dev", {"include_child_environments": "true"})
    res = stacks.run_environment(engine, settings, sample_tables)
    assert engine.apply().ok
    environments = {
        d.args["tags"]["Environment"] for d in engine.find(ResourceKind.IAM_ROLE)
    }
    assert environments == {"dev"}
    assert "sandbox1-limited-role" in res.roles


@pytest.mark.parametrize(
    "environment", [e.value for e in Environment if e != Environment.ALL]
)
def test_every_environment_applies(store, sample_tables, environment):
    apply_foundation(store, sample_tables)
    engine = RecordingEngine(stack=environment, store=store)
    stacks.run_environment(engine, Settings.load(environment, {}), sample_tables)
    result = engine.apply()
    assert result.ok
    assert result.outputs["environment"]["ou_id"]


def test_shared_groups_and_policies_do_not_collide_across_stacks(store, sample_tables):
    apply_foundation(store, sample_tables)
    physical = {}
    for environment in ("dev", "staging", "prod"):
        engine = RecordingEngine(stack=environment, store=store)
        stacks.run_environment(engine, Settings.load(environment, {}), sample_tables)
        assert engine.apply().ok
        for kind in (ResourceKind.IAM_GROUP, ResourceKind.IAM_POLICY):
            for decl in engine.find(kind):
                physical.setdefault((kind, decl.handle.name.result()), []).append(environment)

    got = {key: owners for key, owners in physical.items() if len(owners) > 1}
    assert got == {}
    # admin has environment all, so every stack declares it under its own name
    admins = [
        name
        for kind, name in physical
        if kind == ResourceKind.IAM_GROUP and name.startswith("admin-")
    ]
    assert len(admins) == 3


def test_run_loads_tables_from_config_dir(store):
    engine = RecordingEngine(stack="foundation", store=store)
    settings = Settings.load("foundation", {"config_dir": str(CONFIG_DIR)})
    res = stacks.run(engine, settings)
    assert engine.apply().ok
    assert set(res.accounts) == {"dev-main", "prod-main"}
