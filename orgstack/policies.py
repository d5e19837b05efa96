import json
import typing

from .context import StackContext
from .engine import Handle
from .errors import UnsupportedPolicyKindError
from .resources import (
    Environment,
    IamPolicyRecord,
    PolicyKind,
    ResourceKind,
    ServiceControlPolicyRecord,
    TagPolicyRecord,
)

POLICY_VERSION = "2012-10-17"


def iam_policy_path(environment: Environment) -> str:
    if environment == Environment.ALL:
        return "/managed-policies/"
    return f"/env/{environment.value}/"


def tag_policy_document(record: TagPolicyRecord) -> typing.Dict[str, typing.Any]:
    """
    builds an AWS Organizations tag policy from the allowed values of each tag key
    """
    if record.document is not None:
        return record.document
    tags = {}
    for key, values in record.allowed_values.items():
        rule: typing.Dict[str, typing.Any] = {
            "tag_key": {"@@assign": key},
            "tag_value": {"@@assign": list(values)},
        }
        if record.enforced_for:
            rule["enforced_for"] = {"@@assign": list(record.enforced_for)}
        tags[key] = rule
    return {"tags": tags}


def declare_iam_policy(ctx: StackContext, record: IamPolicyRecord, target_id=None) -> Handle:
    environment = Environment(record.environment)
    description = record.description
    if description is None:
        if environment == Environment.ALL:
            description = f"Managed policy for {record.name}"
        else:
            description = f"{environment.value} environment policy: {record.name}"
    return ctx.create(
        ResourceKind.IAM_POLICY,
        record.name,
        {
            "path": iam_policy_path(environment),
            "description": description,
            "policy": json.dumps(record.document),
        },
        environment=environment.value,
    )


def _declare_organizations_policy(
    ctx: StackContext,
    record: typing.Union[ServiceControlPolicyRecord, TagPolicyRecord],
    content: typing.Dict[str, typing.Any],
    target_id,
) -> Handle:
    policy = ctx.create(
        ResourceKind.ORGANIZATIONS_POLICY,
        record.name,
        {
            "name": record.name,
            "description": record.description or record.name,
            "type": record.kind,
            "content": json.dumps(content),
        },
        tags={"Type": record.kind},
    )
    if target_id is not None:
        ctx.attach(
            ResourceKind.ORGANIZATIONS_POLICY_ATTACHMENT,
            f"{record.name}-attachment",
            {"policy_id": policy.id, "target_id": target_id},
        )
    return policy


def declare_service_control_policy(
    ctx: StackContext, record: ServiceControlPolicyRecord, target_id=None
) -> Handle:
    return _declare_organizations_policy(ctx, record, record.document, target_id)


def declare_tag_policy(ctx: StackContext, record: TagPolicyRecord, target_id=None) -> Handle:
    return _declare_organizations_policy(ctx, record, tag_policy_document(record), target_id)


_FACTORIES = {
    PolicyKind.IAM: declare_iam_policy,
    PolicyKind.SERVICE_CONTROL: declare_service_control_policy,
    PolicyKind.TAG: declare_tag_policy,
}


def declare_policy(ctx: StackContext, record, target_id=None) -> Handle:
    """
    declares the resources for a policy record of any kind. SCP and tag policies
    are attached to `target_id` when it is given.
    """
    kind = getattr(record, "kind", None)
    try:
        factory = _FACTORIES[PolicyKind(kind)]
    except (ValueError, KeyError) as e:
        raise UnsupportedPolicyKindError(kind) from e
    return factory(ctx, record, target_id)
