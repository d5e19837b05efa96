import dataclasses
import json
import typing

import structlog

from .context import StackContext
from .engine import Handle
from .filters import filter_users, select
from .policies import POLICY_VERSION, declare_policy
from .resources import (
    Environment,
    GroupRecord,
    ResourceKind,
    RoleRecord,
    UserRecord,
)
from .tables import Tables

log = structlog.get_logger()


def trust_document() -> typing.Dict[str, typing.Any]:
    """lets IAM users, and only users, assume a role"""
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": "*"},
                "Action": "sts:AssumeRole",
                "Condition": {"StringEquals": {"aws:PrincipalType": "User"}},
            }
        ],
    }


def assume_role_document(role_arn: str) -> typing.Dict[str, typing.Any]:
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {"Effect": "Allow", "Action": "sts:AssumeRole", "Resource": role_arn}
        ],
    }


def last_segment(reference: str) -> str:
    return reference.rsplit("/", 1)[-1]


def _unique(names: typing.Iterable[str]) -> typing.List[str]:
    return list(dict.fromkeys(names))


def policy_reference(ctx: StackContext, reference: str, owner: str):
    """
    a policy ARN for `reference`: literal ARNs pass through, anything else names a
    policy declared in this stack. None when the name does not resolve.
    """
    if reference.startswith("arn:"):
        return reference
    policy = ctx.lookup(ResourceKind.IAM_POLICY, reference, owner)
    if policy is None:
        return None
    return policy.arn


def wire_role(ctx: StackContext, role: RoleRecord) -> Handle:
    handle = ctx.create(
        ResourceKind.IAM_ROLE,
        role.name,
        {
            "name": role.name,
            "description": role.description,
            "assume_role_policy": json.dumps(trust_document()),
        },
        tags=role.tags,
    )
    # the index keeps attachment names stable when an entry is skipped
    for index, reference in enumerate(role.policy_arns):
        policy_arn = policy_reference(ctx, reference, owner=f"role {role.name}")
        if policy_arn is None:
            continue
        ctx.attach(
            ResourceKind.ROLE_POLICY_ATTACHMENT,
            f"{role.name}-policy-{index}",
            {"role": handle.name, "policy_arn": policy_arn},
        )
    return handle


def wire_group(ctx: StackContext, group: GroupRecord) -> Handle:
    # groups are autonamed: shared groups are declared by every environment stack
    handle = ctx.create(ResourceKind.IAM_GROUP, group.name, {"path": group.path})
    for reference in _unique(group.managed_policy_arns):
        policy_arn = policy_reference(ctx, reference, owner=f"group {group.name}")
        if policy_arn is None:
            continue
        ctx.attach(
            ResourceKind.GROUP_POLICY_ATTACHMENT,
            f"{group.name}-attach-{last_segment(reference)}",
            {"group": handle.name, "policy_arn": policy_arn},
        )
    return handle


def wire_user(ctx: StackContext, user: UserRecord) -> Handle:
    owner = f"user {user.username}"
    handle = ctx.create(
        ResourceKind.IAM_USER,
        user.username,
        {"name": user.username, "path": "/users/", "force_destroy": True},
        tags={"Email": user.email, "Description": user.description, **user.tags},
    )

    groups = []
    for name in _unique(user.groups):
        group = ctx.lookup(ResourceKind.IAM_GROUP, name, owner)
        if group is not None:
            groups.append(group)
    if groups:
        # group names are inputs, so the membership waits for every group
        ctx.attach(
            ResourceKind.USER_GROUP_MEMBERSHIP,
            f"{user.username}-groups",
            {"user": handle.name, "groups": [g.name for g in groups]},
        )

    for reference in _unique(user.managed_policies):
        policy_arn = policy_reference(ctx, reference, owner)
        if policy_arn is None:
            continue
        ctx.attach(
            ResourceKind.USER_POLICY_ATTACHMENT,
            f"{user.username}-{last_segment(reference)}",
            {"user": handle.name, "policy_arn": policy_arn},
        )

    for role_name in _unique(user.assume_roles):
        role = ctx.lookup(ResourceKind.IAM_ROLE, role_name, owner)
        if role is None:
            continue
        wire_assume_role(ctx, user, handle, role_name, role)

    return handle


def wire_assume_role(
    ctx: StackContext, user: UserRecord, user_handle: Handle, role_name: str, role: Handle
) -> Handle:
    """
    one dedicated policy per (user, role) pair, so a single grant can be audited
    and revoked without touching any other
    """
    policy = ctx.create(
        ResourceKind.IAM_POLICY,
        f"{user.username}-assume-{role_name}-policy",
        {
            "path": "/users/assume-role-policies/",
            "description": f"Policy allowing {user.username} to assume role {role_name}",
            "policy": role.arn.apply(lambda arn: json.dumps(assume_role_document(arn))),
        },
        tags={"User": user.username, "Role": role_name},
    )
    ctx.attach(
        ResourceKind.USER_POLICY_ATTACHMENT,
        f"{user.username}-assume-{role_name}",
        {"user": user_handle.name, "policy_arn": policy.arn},
    )
    return policy


@dataclasses.dataclass
class EnvironmentResources:
    environments: typing.List[Environment]
    managed_policies: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)
    environment_policies: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)
    roles: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)
    groups: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)
    users: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)


def known_names(tables: Tables) -> typing.Dict[ResourceKind, typing.Set[str]]:
    return {
        ResourceKind.IAM_POLICY: {p.name for p in tables.iam_policies()},
        ResourceKind.IAM_ROLE: {r.name for r in tables.roles},
        ResourceKind.IAM_GROUP: {g.name for g in tables.groups},
        ResourceKind.IAM_USER: {u.username for u in tables.users},
    }


def wire_environment(
    ctx: StackContext, tables: Tables, environments: typing.Iterable[Environment]
) -> EnvironmentResources:
    """
    declares the policies, roles, groups and users of the given environments.
    policies come first so groups, roles and users can reference them by name.
    """
    environments = list(environments)
    res = EnvironmentResources(environments=environments)

    for record in select(tables.iam_policies(), environments):
        handle = declare_policy(ctx, record)
        if record.environment == Environment.ALL:
            res.managed_policies[record.name] = handle
        else:
            res.environment_policies[record.name] = handle

    roles = select(tables.roles, environments)
    for role in roles:
        res.roles[role.name] = wire_role(ctx, role)

    groups = select(tables.groups, environments)
    for group in groups:
        res.groups[group.name] = wire_group(ctx, group)

    users = filter_users(
        tables.users,
        environments,
        groups={g.name for g in groups},
        roles={r.name for r in roles},
    )
    for user in users:
        res.users[user.username] = wire_user(ctx, user)

    log.info(
        "wired environment",
        stack=ctx.stack,
        environments=[e.value for e in environments],
        policies=len(res.managed_policies) + len(res.environment_policies),
        roles=len(res.roles),
        groups=len(res.groups),
        users=len(res.users),
    )
    return res
