import enum
import typing

import pydantic


class Environment(str, enum.Enum):
    PROD = "prod"
    STAGING = "staging"
    DEV = "dev"
    QA = "qa"
    SANDBOX1 = "sandbox1"
    SANDBOX2 = "sandbox2"
    ALL = "all"


class PolicyKind(str, enum.Enum):
    IAM = "IAM"
    SERVICE_CONTROL = "SERVICE_CONTROL_POLICY"
    TAG = "TAG_POLICY"


class ResourceKind(str, enum.Enum):
    ORGANIZATION = "organization"
    ORGANIZATIONAL_UNIT = "organizational_unit"
    ACCOUNT = "account"
    ORGANIZATIONS_POLICY = "organizations_policy"
    ORGANIZATIONS_POLICY_ATTACHMENT = "organizations_policy_attachment"
    IAM_POLICY = "iam_policy"
    IAM_ROLE = "iam_role"
    IAM_GROUP = "iam_group"
    IAM_USER = "iam_user"
    ROLE_POLICY_ATTACHMENT = "role_policy_attachment"
    GROUP_POLICY_ATTACHMENT = "group_policy_attachment"
    USER_GROUP_MEMBERSHIP = "user_group_membership"
    USER_POLICY_ATTACHMENT = "user_policy_attachment"
    SSM_PARAMETER = "ssm_parameter"


# attachment and membership edges between declared resources
EDGE_KINDS = frozenset(
    {
        ResourceKind.ORGANIZATIONS_POLICY_ATTACHMENT,
        ResourceKind.ROLE_POLICY_ATTACHMENT,
        ResourceKind.GROUP_POLICY_ATTACHMENT,
        ResourceKind.USER_GROUP_MEMBERSHIP,
        ResourceKind.USER_POLICY_ATTACHMENT,
    }
)

# the organization, IAM groups and edges do not accept tags
TAGGABLE_KINDS = frozenset(
    {
        ResourceKind.ORGANIZATIONAL_UNIT,
        ResourceKind.ACCOUNT,
        ResourceKind.ORGANIZATIONS_POLICY,
        ResourceKind.IAM_POLICY,
        ResourceKind.IAM_ROLE,
        ResourceKind.IAM_USER,
        ResourceKind.SSM_PARAMETER,
    }
)

ROOT = "root"


class Record(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True, extra="forbid")


class OrganizationRecord(Record):
    name: str
    aws_service_access_principals: typing.List[str] = []
    enabled_policy_types: typing.List[str] = []
    feature_set: str = "ALL"


class OrgUnitRecord(Record):
    name: str
    tags: typing.Dict[str, str] = {}
    children: typing.List["OrgUnitRecord"] = []


OrgUnitRecord.model_rebuild()


class AccountRecord(Record):
    name: str
    email: str
    parent: str
    role_name: str = "OrganizationAccountAccessRole"
    billing_access: bool = True
    tags: typing.Dict[str, str] = {}


class IamPolicyRecord(Record):
    kind: typing.Literal["IAM"] = "IAM"
    name: str
    description: typing.Optional[str] = None
    document: typing.Dict[str, typing.Any]
    environment: Environment = Environment.ALL


class ServiceControlPolicyRecord(Record):
    kind: typing.Literal["SERVICE_CONTROL_POLICY"]
    name: str
    description: typing.Optional[str] = None
    document: typing.Dict[str, typing.Any]
    target: str


class TagPolicyRecord(Record):
    kind: typing.Literal["TAG_POLICY"]
    name: str
    description: typing.Optional[str] = None
    target: str
    document: typing.Optional[typing.Dict[str, typing.Any]] = None
    allowed_values: typing.Dict[str, typing.List[str]] = {}
    enforced_for: typing.List[str] = []

    @pydantic.model_validator(mode="after")
    def needs_content(self):
        if self.document is None and not self.allowed_values:
            raise ValueError("tag policy needs either a document or allowed_values")
        return self


PolicyRecord = typing.Annotated[
    typing.Union[IamPolicyRecord, ServiceControlPolicyRecord, TagPolicyRecord],
    pydantic.Field(discriminator="kind"),
]


class RoleRecord(Record):
    name: str
    description: str = ""
    policy_arns: typing.List[str] = []
    environment: Environment
    tags: typing.Dict[str, str] = {}


class GroupRecord(Record):
    name: str
    description: str = ""
    environment: Environment = Environment.ALL
    managed_policy_arns: typing.List[str] = []
    path: str = "/groups/"


class UserRecord(Record):
    username: str
    email: str
    description: str = ""
    groups: typing.List[str] = []
    managed_policies: typing.List[str] = []
    assume_roles: typing.List[str] = []
    environment: typing.Optional[Environment] = None
    tags: typing.Dict[str, str] = {}

    @property
    def name(self) -> str:
        return self.username
