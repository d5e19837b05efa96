import pathlib

import pytest

from orgstack.context import StackContext
from orgstack.engine import RecordingEngine, StackStore
from orgstack.registry import LookupPolicy
from orgstack.tables import load_tables, parse_tables
from orgstack.wiring import known_names

CONFIG_DIR = pathlib.Path(__file__).parent.parent / "config"

ORGANIZATION = {"name": "root-org", "enabled_policy_types": ["SERVICE_CONTROL_POLICY"]}


def make_tables(**tables):
    return parse_tables({"organization": ORGANIZATION, **tables})


def environment_context(engine, tables, environment="dev", lookups=LookupPolicy.LENIENT):
    return StackContext(
        engine,
        environment,
        environment,
        lookups=lookups,
        known=known_names(tables),
    )


@pytest.fixture
def store():
    return StackStore()


@pytest.fixture
def engine(store):
    return RecordingEngine(stack="dev", store=store)


@pytest.fixture
def sample_tables():
    return load_tables(CONFIG_DIR)
