import dataclasses
import logging
import typing

import structlog

from . import outputs
from .context import StackContext
from .engine import Engine
from .filters import covered_environments
from .foundation import FoundationResources, build_foundation
from .references import (
    FoundationReference,
    ParameterStore,
    resolve_foundation,
    resolve_foundation_parameters,
)
from .registry import LookupPolicy
from .resources import Environment
from .tables import Tables, load_tables
from .wiring import EnvironmentResources, known_names, wire_environment

log = structlog.get_logger()

FOUNDATION = "foundation"


def setting(default, description: str):
    return dataclasses.field(default=default, metadata={"description": description})


@dataclasses.dataclass
class Settings:
    stack: str
    environment: typing.Optional[str] = setting(
        None, "the environment an environment stack declares; empty for the foundation stack"
    )
    foundation_stack: str = setting(
        FOUNDATION, "the stack whose outputs environment stacks reference"
    )
    config_dir: str = setting("config", "the directory holding the configuration tables")
    lookups: str = setting(
        LookupPolicy.LENIENT.value,
        "strict fails on references to undefined roles, groups or policies; lenient skips them",
    )
    managed_by: str = setting("pulumi", "the ManagedBy tag value")
    include_child_environments: bool = setting(
        False, "also declare the environments of the OUs below this environment's OU"
    )
    reference_source: str = setting(
        "stack", "where environment stacks read foundation outputs: stack or parameter-store"
    )
    region: typing.Optional[str] = setting(None, "the region of the parameter store")
    role_arn: typing.Optional[str] = setting(
        None, "a role to assume when reading the parameter store"
    )
    log_level: str = setting("INFO", "the minimum level of log events")

    @property
    def is_foundation(self) -> bool:
        return not self.environment

    @classmethod
    def load(cls, stack: str, config) -> "Settings":
        """
        reads each setting by name from `config`, anything with a `get(key)`
        method such as pulumi.Config or a dict. the stack name doubles as the
        environment for stacks other than the foundation.
        """
        values: typing.Dict[str, typing.Any] = {"stack": stack}
        for field in dataclasses.fields(cls):
            if field.name == "stack":
                continue
            raw = config.get(field.name)
            if raw is None or raw == "":
                continue
            values[field.name] = _coerce(field.default, raw)
        if "environment" not in values and stack != values.get("foundation_stack", FOUNDATION):
            values["environment"] = stack
        settings = cls(**values)
        settings.check()
        return settings

    def check(self) -> None:
        if self.environment is not None:
            Environment(self.environment)
        LookupPolicy(self.lookups)
        if self.reference_source not in ("stack", "parameter-store"):
            raise ValueError(f"unknown reference_source {self.reference_source}")


def _coerce(default, raw):
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    return raw


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        )
    )


def run_foundation(engine: Engine, settings: Settings, tables: Tables) -> FoundationResources:
    ctx = StackContext(
        engine,
        settings.stack,
        Environment.ALL.value,
        managed_by=settings.managed_by,
        lookups=LookupPolicy(settings.lookups),
    )
    res = build_foundation(ctx, tables)
    outputs.persist_foundation(ctx, res)
    for key, value in outputs.foundation_exports(res).items():
        engine.export(key, value)
    return res


def run_environment(
    engine: Engine,
    settings: Settings,
    tables: Tables,
    foundation: typing.Optional[FoundationReference] = None,
) -> EnvironmentResources:
    environment = Environment(settings.environment)
    if foundation is None:
        foundation = reference_foundation(engine, settings)
    tree = tables.ou_tree() if settings.include_child_environments else None
    ctx = StackContext(
        engine,
        settings.stack,
        environment.value,
        managed_by=settings.managed_by,
        lookups=LookupPolicy(settings.lookups),
        known=known_names(tables),
    )
    res = wire_environment(ctx, tables, covered_environments(environment, tree))
    outputs.persist_environment(ctx, environment.value, res)
    exports = outputs.environment_exports(
        environment.value, res, foundation.organizational_unit_id(environment.value)
    )
    for key, value in exports.items():
        engine.export(key, value)
    return res


def reference_foundation(engine: Engine, settings: Settings) -> FoundationReference:
    if settings.reference_source == "parameter-store":
        store = ParameterStore(region=settings.region, role_arn=settings.role_arn)
        return resolve_foundation_parameters(engine, store)
    return resolve_foundation(engine, settings.foundation_stack)


def run(engine: Engine, settings: Settings, tables: typing.Optional[Tables] = None):
    """declares the foundation or the environment stack named by `settings`"""
    if tables is None:
        tables = load_tables(settings.config_dir)
    log.info("declaring stack", stack=settings.stack, environment=settings.environment)
    if settings.is_foundation:
        return run_foundation(engine, settings, tables)
    return run_environment(engine, settings, tables)
