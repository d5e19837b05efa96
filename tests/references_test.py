import json

import boto3
import pytest
from botocore.stub import Stubber

from orgstack.context import StackContext
from orgstack.engine import RecordingEngine
from orgstack.errors import ReferenceNotFoundError
from orgstack.foundation import build_foundation
from orgstack.outputs import foundation_exports
from orgstack.references import (
    ParameterStore,
    is_throttled,
    resolve_foundation,
    resolve_foundation_parameters,
)


@pytest.fixture
def ssm():
    client = boto3.client(
        "ssm",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def parameter(path, value):
    return {"Parameter": {"Name": path, "Type": "SecureString", "Value": json.dumps(value)}}


def expect_get(stubber, path, value):
    stubber.add_response(
        "get_parameter",
        parameter(path, value),
        {"Name": path, "WithDecryption": True},
    )


def test_parameter_store_decodes_json(ssm):
    client, stubber = ssm
    expect_get(stubber, "/environments/dev/roles", {"dev-limited-role": {"name": "dev-limited-role"}})
    got = ParameterStore(client=client).get("/environments/dev/roles")
    assert got == {"dev-limited-role": {"name": "dev-limited-role"}}


def test_missing_parameter(ssm):
    client, stubber = ssm
    stubber.add_client_error(
        "get_parameter",
        service_error_code="ParameterNotFound",
        expected_params={"Name": "/organization/accounts", "WithDecryption": True},
    )
    with pytest.raises(ReferenceNotFoundError) as exc:
        ParameterStore(client=client).get("/organization/accounts")
    assert exc.value.key == "/organization/accounts"


def test_throttled_reads_are_retried(ssm):
    client, stubber = ssm
    stubber.add_client_error("get_parameter", service_error_code="ThrottlingException")
    expect_get(stubber, "/organization/details", {"id": "o-1"})
    assert ParameterStore(client=client).get("/organization/details") == {"id": "o-1"}


def test_only_throttling_is_retried():
    assert not is_throttled(ValueError("boom"))


def test_foundation_from_parameters(ssm):
    client, stubber = ssm
    expect_get(stubber, "/organization/details", {"id": "o-1", "root_id": "r-1"})
    expect_get(stubber, "/organization/organizational-units", {"dev": {"id": "ou-dev"}})
    expect_get(stubber, "/organization/accounts", {"dev-main": {"id": "111111111111"}})

    ref = resolve_foundation_parameters(RecordingEngine(), ParameterStore(client=client))
    assert ref.organizational_unit_id("dev").result() == "ou-dev"
    assert ref.organizational_unit_id("qa").result() is None
    assert ref.account_id("dev-main").result() == "111111111111"


def test_foundation_from_stack_outputs(store, sample_tables):
    foundation = RecordingEngine(stack="foundation", store=store)
    res = build_foundation(StackContext(foundation, "foundation", "all"), sample_tables)
    for key, value in foundation_exports(res).items():
        foundation.export(key, value)
    foundation.apply()

    ref = resolve_foundation(RecordingEngine(stack="dev", store=store), "foundation")
    assert ref.organizational_unit_id("sandbox1").result() == (
        res.organizational_units["sandbox1"].id.result()
    )
    assert ref.account_id("prod-main").result() == res.accounts["prod-main"].id.result()


def test_foundation_not_applied(engine):
    with pytest.raises(ReferenceNotFoundError):
        resolve_foundation(engine, "foundation")
