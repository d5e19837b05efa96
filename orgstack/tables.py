import dataclasses
import pathlib
import typing

import pydantic
import structlog
import yaml
from treelib import Tree
from treelib.exceptions import DuplicatedNodeIdError

from .errors import ConfigError, UnsupportedPolicyKindError
from .resources import (
    ROOT,
    AccountRecord,
    Environment,
    GroupRecord,
    IamPolicyRecord,
    OrganizationRecord,
    OrgUnitRecord,
    PolicyKind,
    PolicyRecord,
    RoleRecord,
    UserRecord,
)

log = structlog.get_logger()

TABLE_FILES = {
    "organization": "organization.yaml",
    "organizational_units": "organizational_units.yaml",
    "accounts": "accounts.yaml",
    "policies": "policies.yaml",
    "roles": "roles.yaml",
    "groups": "groups.yaml",
    "users": "users.yaml",
}

_policy_adapter = pydantic.TypeAdapter(PolicyRecord)


@dataclasses.dataclass(frozen=True)
class Tables:
    organization: OrganizationRecord
    organizational_units: typing.List[OrgUnitRecord] = dataclasses.field(
        default_factory=list
    )
    accounts: typing.List[AccountRecord] = dataclasses.field(default_factory=list)
    policies: typing.List[PolicyRecord] = dataclasses.field(default_factory=list)
    roles: typing.List[RoleRecord] = dataclasses.field(default_factory=list)
    groups: typing.List[GroupRecord] = dataclasses.field(default_factory=list)
    users: typing.List[UserRecord] = dataclasses.field(default_factory=list)

    def ou_tree(self) -> Tree:
        """
        builds a tree of the OUs below a synthetic root node. node identifiers are
        OU names, so a name used twice is rejected.
        """
        tree = Tree()
        tree.create_node(tag=ROOT, identifier=ROOT)

        def add(ou: OrgUnitRecord, parent: str):
            if ou.name == ROOT:
                raise ConfigError(f"{ROOT} is reserved and cannot name an OU")
            try:
                tree.create_node(tag=ou.name, identifier=ou.name, parent=parent, data=ou)
            except DuplicatedNodeIdError as e:
                raise ConfigError(f"OU {ou.name} is defined more than once") from e
            for child in ou.children:
                add(child, ou.name)

        for ou in self.organizational_units:
            add(ou, ROOT)
        return tree

    def iam_policies(self) -> typing.List[IamPolicyRecord]:
        return [p for p in self.policies if p.kind == PolicyKind.IAM.value]

    def organization_policies(self) -> typing.List[PolicyRecord]:
        return [p for p in self.policies if p.kind != PolicyKind.IAM.value]

    def validate(self) -> "Tables":
        """cross-table checks that no single record can make on its own"""
        tree = self.ou_tree()

        _unique("account email", [a.email.lower() for a in self.accounts])
        _unique("account", [a.name for a in self.accounts])
        _unique("policy", [p.name for p in self.policies])
        _unique("role", [r.name for r in self.roles])
        _unique("group", [g.name for g in self.groups])
        _unique("user", [u.username for u in self.users])

        for account in self.accounts:
            if account.parent != ROOT and not tree.contains(account.parent):
                raise ConfigError(
                    f"account {account.name} is placed in unknown OU {account.parent}"
                )

        targets = {a.name for a in self.accounts}
        for policy in self.organization_policies():
            if policy.target == ROOT or tree.contains(policy.target):
                continue
            if policy.target not in targets:
                raise ConfigError(
                    f"policy {policy.name} targets unknown OU or account {policy.target}"
                )
        return self


def _unique(what: str, values: typing.List[str]):
    seen: typing.Set[str] = set()
    for v in values:
        if v in seen:
            raise ConfigError(f"{what} {v} is defined more than once")
        seen.add(v)


def parse_tables(raw: typing.Dict[str, typing.Any]) -> Tables:
    """
    builds validated tables from plain data shaped like the YAML files
    """
    try:
        organization = OrganizationRecord.model_validate(raw.get("organization") or {})
    except pydantic.ValidationError as e:
        raise ConfigError(f"invalid organization table: {e}") from e

    return Tables(
        organization=organization,
        organizational_units=_parse_ous(raw.get("organizational_units") or {}),
        accounts=_parse_accounts(raw.get("accounts") or {}),
        policies=_parse_policies(raw.get("policies") or []),
        roles=_parse_roles(raw.get("roles") or {}),
        groups=_parse_list("groups", GroupRecord, raw.get("groups") or []),
        users=_parse_list("users", UserRecord, raw.get("users") or []),
    ).validate()


def load_tables(directory: typing.Union[str, pathlib.Path]) -> Tables:
    directory = pathlib.Path(directory)
    raw: typing.Dict[str, typing.Any] = {}
    for table, filename in TABLE_FILES.items():
        path = directory / filename
        if not path.exists():
            log.debug("configuration table not found", table=table, path=str(path))
            continue
        with open(path) as f:
            try:
                raw[table] = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if "organization" not in raw:
        raise ConfigError(f"{directory / TABLE_FILES['organization']} is required")
    tables = parse_tables(raw)
    log.info(
        "loaded configuration tables",
        directory=str(directory),
        accounts=len(tables.accounts),
        policies=len(tables.policies),
        roles=len(tables.roles),
        groups=len(tables.groups),
        users=len(tables.users),
    )
    return tables


def _parse_ous(raw: typing.Dict[str, typing.Any]) -> typing.List[OrgUnitRecord]:
    def convert(name: str, body: typing.Optional[typing.Dict[str, typing.Any]]):
        body = dict(body or {})
        children = body.pop("children", None) or {}
        return {
            "name": body.pop("name", name),
            "children": [convert(k, v) for k, v in children.items()],
            **body,
        }

    return _parse_list(
        "organizational_units",
        OrgUnitRecord,
        [convert(name, body) for name, body in raw.items()],
    )


def _parse_accounts(raw: typing.Dict[str, typing.Any]) -> typing.List[AccountRecord]:
    rows = []
    for parent, accounts in raw.items():
        for account in accounts or []:
            rows.append({"parent": parent, **account})
    return _parse_list("accounts", AccountRecord, rows)


def _parse_roles(raw: typing.Dict[str, typing.Any]) -> typing.List[RoleRecord]:
    rows = []
    for environment, roles in raw.items():
        try:
            Environment(environment)
        except ValueError as e:
            raise ConfigError(f"roles are listed under unknown environment {environment}") from e
        for role in roles or []:
            rows.append({"environment": environment, **role})
    return _parse_list("roles", RoleRecord, rows)


def _parse_policies(raw: typing.List[typing.Dict[str, typing.Any]]) -> typing.List[PolicyRecord]:
    policies = []
    for row in raw:
        kind = row.get("kind", PolicyKind.IAM.value)
        try:
            PolicyKind(kind)
        except ValueError as e:
            raise UnsupportedPolicyKindError(kind) from e
        try:
            policies.append(_policy_adapter.validate_python({**row, "kind": kind}))
        except pydantic.ValidationError as e:
            raise ConfigError(f"invalid policy {row.get('name')}: {e}") from e
    return policies


T = typing.TypeVar("T", bound=pydantic.BaseModel)


def _parse_list(table: str, model: typing.Type[T], rows: typing.List[typing.Any]) -> typing.List[T]:
    records = []
    for row in rows:
        try:
            records.append(model.model_validate(row))
        except pydantic.ValidationError as e:
            raise ConfigError(f"invalid entry in {table} table: {e}") from e
    return records
