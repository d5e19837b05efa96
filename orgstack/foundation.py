import dataclasses
import typing

import structlog
from treelib import Tree

from .context import StackContext
from .engine import Handle
from .errors import ConfigError
from .policies import declare_policy
from .resources import ROOT, OrgUnitRecord, ResourceKind
from .tables import Tables

log = structlog.get_logger()


@dataclasses.dataclass
class FoundationResources:
    organization: Handle
    organizational_units: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)
    accounts: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)
    policies: typing.Dict[str, Handle] = dataclasses.field(default_factory=dict)

    def target_id(self, target: str):
        """the id of the organization root, an OU or an account, by name"""
        if target == ROOT:
            return self.organization.output("root_id")
        if target in self.organizational_units:
            return self.organizational_units[target].id
        if target in self.accounts:
            return self.accounts[target].id
        raise ConfigError(f"unknown policy target {target}")


def declare_organizational_units(
    ctx: StackContext, tree: Tree, root_id
) -> typing.Dict[str, Handle]:
    """
    walks the OU tree depth first so each OU is declared after its parent and
    takes the parent's id as its parent_id
    """
    ous: typing.Dict[str, Handle] = {}
    for node_id in tree.expand_tree(nid=ROOT, mode=Tree.DEPTH, sorting=False):
        if node_id == ROOT:
            continue
        record: OrgUnitRecord = tree.get_node(node_id).data
        parent = tree.parent(node_id).identifier
        parent_id = root_id if parent == ROOT else ous[parent].id
        ous[record.name] = ctx.create(
            ResourceKind.ORGANIZATIONAL_UNIT,
            record.name,
            {"name": record.name, "parent_id": parent_id},
            tags={"Team": "Platform", **record.tags},
            environment=record.name,
        )
    return ous


def build_foundation(ctx: StackContext, tables: Tables) -> FoundationResources:
    org = tables.organization
    organization = ctx.create(
        ResourceKind.ORGANIZATION,
        org.name,
        {
            "aws_service_access_principals": list(org.aws_service_access_principals),
            "enabled_policy_types": list(org.enabled_policy_types),
            "feature_set": org.feature_set,
        },
    )
    res = FoundationResources(organization=organization)
    res.organizational_units = declare_organizational_units(
        ctx, tables.ou_tree(), organization.output("root_id")
    )

    for account in tables.accounts:
        res.accounts[account.name] = ctx.create(
            ResourceKind.ACCOUNT,
            f"{account.name}-account",
            {
                "name": account.name,
                "email": account.email,
                "parent_id": res.target_id(account.parent),
                "role_name": account.role_name,
                "iam_user_access_to_billing": "ALLOW" if account.billing_access else "DENY",
            },
            tags=account.tags,
        )

    for policy in tables.organization_policies():
        res.policies[policy.name] = declare_policy(
            ctx, policy, res.target_id(policy.target)
        )

    log.info(
        "declared foundation",
        stack=ctx.stack,
        organizational_units=len(res.organizational_units),
        accounts=len(res.accounts),
        policies=len(res.policies),
    )
    return res
