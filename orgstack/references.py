import dataclasses
import json
import typing

import boto3
import botocore.session
import structlog
from botocore.credentials import (
    AssumeRoleCredentialFetcher,
    DeferredRefreshableCredentials,
)
from botocore.exceptions import ClientError
from retrying import retry

from .engine import Engine
from .errors import ReferenceNotFoundError
from .outputs import ORGANIZATION_ACCOUNTS, ORGANIZATION_DETAILS, ORGANIZATION_UNITS

log = structlog.get_logger()

FOUNDATION_OUTPUTS = ("organization", "organizational_units", "accounts")

# where the foundation stack persists each of its outputs
FOUNDATION_PARAMETERS = {
    "organization": ORGANIZATION_DETAILS,
    "organizational_units": ORGANIZATION_UNITS,
    "accounts": ORGANIZATION_ACCOUNTS,
}


@dataclasses.dataclass(frozen=True)
class FoundationReference:
    """
    The foundation stack's outputs as seen from an environment stack. Every
    field is a deferred value: pass it through to declarations, never branch on
    it.
    """

    stack: str
    organization: typing.Any
    organizational_units: typing.Any
    accounts: typing.Any

    def organizational_unit_id(self, name: str):
        return self.organizational_units.apply(
            lambda ous: ((ous or {}).get(name) or {}).get("id")
        )

    def account_id(self, name: str):
        return self.accounts.apply(
            lambda accounts: ((accounts or {}).get(name) or {}).get("id")
        )


def resolve_foundation(engine: Engine, stack: str) -> FoundationReference:
    """
    reads the foundation outputs through the engine's stack references. raises
    ReferenceNotFoundError when the engine can tell the stack or an output is
    missing.
    """
    ref = engine.stack_reference(stack)
    values = {key: ref.require_output(key) for key in FOUNDATION_OUTPUTS}
    log.info("resolved stack reference", stack=stack, outputs=list(values))
    return FoundationReference(stack=stack, **values)


def is_throttled(exc: Exception) -> bool:
    return (
        isinstance(exc, ClientError)
        and exc.response.get("Error", {}).get("Code")
        in ("ThrottlingException", "TooManyUpdates")
    )


class ParameterStore:
    """
    Reads the SecureString parameters the foundation stack persists, so
    environment stacks can resolve it without access to its state backend.
    """

    def __init__(self, client=None, region: typing.Optional[str] = None, role_arn: typing.Optional[str] = None):
        if client is None:
            client = get_boto3_session(role_arn=role_arn).client("ssm", region_name=region)
        self.ssm = client

    # retry for up to 30 seconds while the API throttles us
    @retry(
        stop_max_delay=30000,
        wait_exponential_multiplier=250,
        wait_exponential_max=5000,
        retry_on_exception=is_throttled,
    )
    def get(self, path: str) -> typing.Any:
        try:
            res = self.ssm.get_parameter(Name=path, WithDecryption=True)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ParameterNotFound":
                raise ReferenceNotFoundError("parameter-store", path) from e
            raise
        return json.loads(res["Parameter"]["Value"])


def resolve_foundation_parameters(engine: Engine, store: ParameterStore) -> FoundationReference:
    values = {
        key: engine.output(store.get(path)) for key, path in FOUNDATION_PARAMETERS.items()
    }
    log.info("resolved parameter store reference", outputs=list(values))
    return FoundationReference(stack="parameter-store", **values)


# based on https://stackoverflow.com/questions/44171849/aws-boto3-assumerole-example-which-includes-role-usage
def get_boto3_session(role_arn: typing.Optional[str] = None) -> boto3.Session:
    session = boto3.Session()
    if not role_arn:
        return session

    fetcher = AssumeRoleCredentialFetcher(
        client_creator=session.client,
        source_credentials=session.get_credentials(),
        role_arn=role_arn,
    )
    botocore_session = botocore.session.Session()
    botocore_session._credentials = DeferredRefreshableCredentials(
        method="assume-role", refresh_using=fetcher.fetch_credentials
    )
    return boto3.Session(botocore_session=botocore_session)
