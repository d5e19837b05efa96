import typing

import pulumi
import pulumi_aws as aws

from .engine import Engine, Handle
from .resources import ResourceKind

RESOURCE_TYPES = {
    ResourceKind.ORGANIZATION: aws.organizations.Organization,
    ResourceKind.ORGANIZATIONAL_UNIT: aws.organizations.OrganizationalUnit,
    ResourceKind.ACCOUNT: aws.organizations.Account,
    ResourceKind.ORGANIZATIONS_POLICY: aws.organizations.Policy,
    ResourceKind.ORGANIZATIONS_POLICY_ATTACHMENT: aws.organizations.PolicyAttachment,
    ResourceKind.IAM_POLICY: aws.iam.Policy,
    ResourceKind.IAM_ROLE: aws.iam.Role,
    ResourceKind.IAM_GROUP: aws.iam.Group,
    ResourceKind.IAM_USER: aws.iam.User,
    ResourceKind.ROLE_POLICY_ATTACHMENT: aws.iam.RolePolicyAttachment,
    ResourceKind.GROUP_POLICY_ATTACHMENT: aws.iam.GroupPolicyAttachment,
    ResourceKind.USER_GROUP_MEMBERSHIP: aws.iam.UserGroupMembership,
    ResourceKind.USER_POLICY_ATTACHMENT: aws.iam.UserPolicyAttachment,
    ResourceKind.SSM_PARAMETER: aws.ssm.Parameter,
}


class PulumiEngine(Engine):
    """
    Declares resources as pulumi_aws resources in the running Pulumi program.
    Pulumi infers the dependency graph from the Outputs passed as inputs and
    owns diffing, state locking and retries.
    """

    def __init__(self, opts: typing.Optional[pulumi.ResourceOptions] = None):
        self.opts = opts

    def declare(self, kind, name, args) -> Handle:
        resource = RESOURCE_TYPES[kind](name, opts=self.opts, **args)
        outputs = {
            "id": resource.id,
            "arn": getattr(resource, "arn", None),
            "name": getattr(resource, "name", None) or pulumi.Output.from_input(name),
        }
        if kind == ResourceKind.ORGANIZATION:
            outputs["root_id"] = resource.roots.apply(lambda roots: roots[0].id)
        return Handle(kind, name, outputs, resource=resource)

    def output(self, value) -> pulumi.Output:
        return pulumi.Output.from_input(value)

    def stack_reference(self, stack: str) -> pulumi.StackReference:
        return pulumi.StackReference(stack)

    def export(self, key: str, value) -> None:
        pulumi.export(key, value)
