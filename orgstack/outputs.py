import json
import typing

from .context import StackContext
from .engine import Handle
from .foundation import FoundationResources
from .resources import ResourceKind
from .wiring import EnvironmentResources

ORGANIZATION_DETAILS = "/organization/details"
ORGANIZATION_ACCOUNTS = "/organization/accounts"
ORGANIZATION_UNITS = "/organization/organizational-units"
ENVIRONMENT_ROLES = "/environments/{environment}/roles"

# the only handle attributes that ever leave a stack
EXPORTED_FIELDS = ("id", "arn", "name")


def triple(handle: Handle) -> typing.Dict[str, typing.Any]:
    return {field: handle.outputs.get(field) for field in EXPORTED_FIELDS}


def project(handles: typing.Mapping[str, Handle]) -> typing.Dict[str, typing.Any]:
    return {name: triple(handle) for name, handle in sorted(handles.items())}


def organization_details(organization: Handle) -> typing.Dict[str, typing.Any]:
    return {
        "id": organization.id,
        "root_id": organization.output("root_id"),
        "arn": organization.arn,
        "name": organization.name,
    }


def foundation_exports(res: FoundationResources) -> typing.Dict[str, typing.Any]:
    return {
        "organization": organization_details(res.organization),
        "organizational_units": project(res.organizational_units),
        "accounts": project(res.accounts),
        "policies": project(res.policies),
    }


def environment_exports(
    environment: str, res: EnvironmentResources, ou_id=None
) -> typing.Dict[str, typing.Any]:
    return {
        "environment": {"name": environment, "ou_id": ou_id},
        "roles": project(res.roles),
        "groups": project(res.groups),
        "policies": {
            "managed": project(res.managed_policies),
            "environment": project(res.environment_policies),
        },
    }


def persist(ctx: StackContext, logical_name: str, path: str, value, component: str) -> Handle:
    """
    stores a projection as an encrypted parameter. the JSON is rendered once
    every value in it has resolved.
    """
    return ctx.create(
        ResourceKind.SSM_PARAMETER,
        logical_name,
        {
            "name": path,
            "type": "SecureString",
            "value": ctx.engine.output(value).apply(
                lambda resolved: json.dumps(resolved, sort_keys=True)
            ),
        },
        tags={"Component": component},
    )


def persist_foundation(ctx: StackContext, res: FoundationResources) -> typing.List[Handle]:
    return [
        persist(
            ctx,
            "organization-details",
            ORGANIZATION_DETAILS,
            organization_details(res.organization),
            "Organization",
        ),
        persist(ctx, "account-details", ORGANIZATION_ACCOUNTS, project(res.accounts), "Accounts"),
        persist(
            ctx,
            "organizational-unit-details",
            ORGANIZATION_UNITS,
            project(res.organizational_units),
            "OrganizationalUnits",
        ),
    ]


def persist_environment(ctx: StackContext, environment: str, res: EnvironmentResources) -> Handle:
    return persist(
        ctx,
        f"{environment}-roles",
        ENVIRONMENT_ROLES.format(environment=environment),
        project(res.roles),
        "Roles",
    )
