import typing

import structlog
from treelib import Tree

from .resources import Environment, UserRecord

log = structlog.get_logger()

R = typing.TypeVar("R")

EnvironmentLike = typing.Union[Environment, str]


def _environment(value: typing.Optional[EnvironmentLike]) -> typing.Optional[Environment]:
    if value is None:
        return None
    return Environment(value)


def matches(value: typing.Optional[EnvironmentLike], environments: typing.Iterable[EnvironmentLike]) -> bool:
    """a record tagged `value` applies to an environment when the tags agree or it is tagged all"""
    env = _environment(value)
    if env is None:
        return False
    return env == Environment.ALL or env in {Environment(e) for e in environments}


def _key(record) -> str:
    return getattr(record, "username", None) or record.name


def select(table: typing.Iterable[R], environments: typing.Iterable[EnvironmentLike]) -> typing.List[R]:
    """
    returns the records of `table` that apply to any of `environments`, in
    table order and at most once per name
    """
    environments = list(environments)
    selected: typing.List[R] = []
    seen: typing.Set[str] = set()
    for record in table:
        if not matches(record.environment, environments):
            continue
        key = _key(record)
        if key in seen:
            log.debug("ignoring duplicate record", name=key)
            continue
        seen.add(key)
        selected.append(record)
    return selected


def filter_records(table: typing.Iterable[R], environment: EnvironmentLike) -> typing.List[R]:
    return select(table, [environment])


def filter_users(
    users: typing.Iterable[UserRecord],
    environments: typing.Iterable[EnvironmentLike],
    groups: typing.Collection[str],
    roles: typing.Collection[str],
) -> typing.List[UserRecord]:
    """
    Selects the users an environment stack declares.

    A user with an explicit environment is selected by it alone. Otherwise the
    user belongs to the environment when any of its groups is in `groups`, any
    of its assumable roles is in `roles`, or its Environment tag matches.
    """
    environments = list(environments)
    selected: typing.List[UserRecord] = []
    seen: typing.Set[str] = set()
    for user in users:
        if user.environment is not None:
            include = matches(user.environment, environments)
        else:
            include = (
                any(g in groups for g in user.groups)
                or any(r in roles for r in user.assume_roles)
                or _tag_matches(user.tags.get("Environment"), environments)
            )
        if not include:
            continue
        if user.username in seen:
            log.debug("ignoring duplicate user", name=user.username)
            continue
        seen.add(user.username)
        selected.append(user)
    return selected


def _tag_matches(value: typing.Optional[str], environments) -> bool:
    try:
        return matches(value, environments)
    except ValueError:
        # free-form tag values that are not environments never match
        return False


def descendants(tree: Tree, node_id: str) -> typing.List[str]:
    """
    look through the children of the tree node recursively to find every OU
    below `node_id`
    """
    found: typing.List[str] = []
    for child in tree.children(node_id):
        found.append(child.identifier)
        found = found + descendants(tree, child.identifier)
    return found


def covered_environments(
    environment: EnvironmentLike, tree: typing.Optional[Tree] = None
) -> typing.List[Environment]:
    """
    the environment tags an environment stack covers: its own, plus those of the
    OUs below its OU when a tree is given
    """
    env = Environment(environment)
    covered = [env]
    if tree is None or not tree.contains(env.value):
        return covered
    for name in descendants(tree, env.value):
        try:
            child = Environment(name)
        except ValueError:
            continue
        if child not in covered:
            covered.append(child)
    return covered
