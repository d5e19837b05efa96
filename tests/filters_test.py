from conftest import make_tables
from orgstack.filters import (
    covered_environments,
    descendants,
    filter_records,
    filter_users,
    select,
)
from orgstack.resources import Environment, GroupRecord, RoleRecord, UserRecord


def groups(*pairs):
    return [GroupRecord(name=name, environment=env) for name, env in pairs]


def user(username, **kwargs):
    return UserRecord(username=username, email=f"{username}@example.com", **kwargs)


def test_filter_records_matches_environment_or_all():
    table = groups(("dev-developers", "dev"), ("admin", "all"), ("prod-readonly", "prod"))
    got = [g.name for g in filter_records(table, "dev")]
    assert got == ["dev-developers", "admin"]


def test_filter_records_is_idempotent():
    table = groups(("a", "dev"), ("b", "all"), ("c", "qa"))
    first = filter_records(table, Environment.DEV)
    assert filter_records(first, Environment.DEV) == first
    assert filter_records(table, Environment.DEV) == first


def test_select_keeps_one_record_per_name():
    table = [
        RoleRecord(name="audit", environment="dev"),
        RoleRecord(name="audit", environment="all", description="duplicate"),
    ]
    got = select(table, ["dev"])
    assert len(got) == 1
    assert got[0].description == ""


def test_select_covers_several_environments():
    table = groups(("a", "dev"), ("b", "sandbox1"), ("c", "sandbox2"), ("d", "prod"))
    got = [g.name for g in select(table, ["dev", "sandbox1"])]
    assert got == ["a", "b"]


def test_users_with_explicit_environment():
    users = [user("dev-user", environment="dev"), user("prod-user", environment="prod")]
    got = [u.username for u in filter_users(users, ["dev"], groups=set(), roles=set())]
    assert got == ["dev-user"]


def test_users_without_environment_are_inferred():
    users = [
        user("by-group", groups=["dev-developers"]),
        user("by-role", assume_roles=["dev-limited-role"]),
        user("by-tag", tags={"Environment": "dev"}),
        user("by-all-tag", tags={"Environment": "all"}),
        user("elsewhere", groups=["prod-readonly"], tags={"Environment": "prod"}),
        user("free-form-tag", tags={"Environment": "Production"}),
    ]
    got = filter_users(
        users, ["dev"], groups={"dev-developers"}, roles={"dev-limited-role"}
    )
    assert [u.username for u in got] == ["by-group", "by-role", "by-tag", "by-all-tag"]


def test_users_matching_several_ways_are_selected_once():
    users = [
        user("u1", groups=["g"], assume_roles=["r"], tags={"Environment": "dev"}),
        user("u1", groups=["g"]),
    ]
    got = filter_users(users, ["dev"], groups={"g"}, roles={"r"})
    assert [u.username for u in got] == ["u1"]


def test_descendants_finds_nested_ous():
    tables = make_tables(
        organizational_units={
            "dev": {"children": {"sandbox1": {"children": {"scratch": {}}}}},
            "prod": {},
        }
    )
    tree = tables.ou_tree()
    assert descendants(tree, "dev") == ["sandbox1", "scratch"]
    assert descendants(tree, "prod") == []


def test_covered_environments_include_child_ous():
    tables = make_tables(
        organizational_units={"dev": {"children": {"sandbox1": {}, "scratch": {}}}}
    )
    got = covered_environments("dev", tables.ou_tree())
    # scratch is not an environment
    assert got == [Environment.DEV, Environment.SANDBOX1]
    assert covered_environments("dev") == [Environment.DEV]
