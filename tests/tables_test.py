import pytest

from conftest import make_tables
from orgstack.errors import ConfigError, UnsupportedPolicyKindError
from orgstack.resources import Environment, PolicyKind


def test_ou_tree_nested():
    tables = make_tables(
        organizational_units={"dev": {"children": {"sandbox1": {}, "sandbox2": {}}}}
    )
    tree = tables.ou_tree()
    assert tree.parent("dev").identifier == "root"
    assert tree.parent("sandbox1").identifier == "dev"
    assert [n.identifier for n in tree.children("dev")] == ["sandbox1", "sandbox2"]


def test_ou_defined_twice_is_rejected():
    with pytest.raises(ConfigError):
        make_tables(organizational_units={"dev": {"children": {"qa": {}}}, "qa": {}})


def test_roles_under_unknown_environment_are_rejected():
    with pytest.raises(ConfigError):
        make_tables(roles={"production": [{"name": "prod-system-role"}]})


def test_unknown_policy_kind_fails_fast():
    with pytest.raises(UnsupportedPolicyKindError):
        make_tables(policies=[{"kind": "PERMISSION_BOUNDARY", "name": "p", "document": {}}])


def test_policy_kind_defaults_to_iam():
    tables = make_tables(policies=[{"name": "p", "document": {"Statement": []}}])
    got = tables.policies[0]
    assert got.kind == PolicyKind.IAM.value
    assert got.environment == Environment.ALL


def test_service_control_policy_needs_target():
    with pytest.raises(ConfigError):
        make_tables(
            policies=[{"kind": "SERVICE_CONTROL_POLICY", "name": "scp", "document": {}}]
        )


def test_tag_policy_needs_content():
    with pytest.raises(ConfigError):
        make_tables(policies=[{"kind": "TAG_POLICY", "name": "tags", "target": "root"}])


def test_policy_target_must_exist():
    with pytest.raises(ConfigError):
        make_tables(
            organizational_units={"prod": {}},
            policies=[
                {
                    "kind": "SERVICE_CONTROL_POLICY",
                    "name": "scp",
                    "document": {},
                    "target": "production",
                }
            ],
        )


def test_account_emails_are_unique():
    with pytest.raises(ConfigError):
        make_tables(
            organizational_units={"dev": {}},
            accounts={
                "dev": [
                    {"name": "a", "email": "same@example.com"},
                    {"name": "b", "email": "SAME@example.com"},
                ]
            },
        )


def test_account_parent_must_exist():
    with pytest.raises(ConfigError):
        make_tables(accounts={"dev": [{"name": "a", "email": "a@example.com"}]})


def test_unknown_user_environment_is_rejected():
    with pytest.raises(ConfigError):
        make_tables(users=[{"username": "u", "email": "u@example.com", "environment": "qa2"}])


def test_usernames_are_unique():
    with pytest.raises(ConfigError):
        make_tables(
            users=[
                {"username": "u", "email": "u@example.com"},
                {"username": "u", "email": "other@example.com"},
            ]
        )


def test_sample_config_loads(sample_tables):
    assert sample_tables.organization.name == "root-org"
    assert {r.name for r in sample_tables.roles} >= {"dev-limited-role", "prod-system-role"}
    assert [p.name for p in sample_tables.organization_policies()] == [
        "production-scp",
        "sandbox-scp",
        "resource-tag-policy",
    ]
    tree = sample_tables.ou_tree()
    assert tree.parent("sandbox2").identifier == "dev"
