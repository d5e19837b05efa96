import typing

import structlog

from .engine import Engine, Handle
from .registry import LookupPolicy, Registry
from .resources import TAGGABLE_KINDS, ResourceKind

log = structlog.get_logger()


class StackContext:
    """
    Everything one stack evaluation declares goes through here, so every
    taggable resource carries the Environment and ManagedBy tags and lands in
    the stack's registry.
    """

    def __init__(
        self,
        engine: Engine,
        stack: str,
        environment: str,
        managed_by: str = "pulumi",
        lookups: LookupPolicy = LookupPolicy.LENIENT,
        known: typing.Optional[typing.Dict[ResourceKind, typing.Set[str]]] = None,
    ):
        self.engine = engine
        self.stack = stack
        self.environment = environment
        self.managed_by = managed_by
        self.registry = Registry(stack, lookups, known)

    def tags(
        self,
        extra: typing.Optional[typing.Dict[str, typing.Any]] = None,
        environment: typing.Optional[str] = None,
    ) -> typing.Dict[str, typing.Any]:
        tags = {k: v for k, v in (extra or {}).items() if v is not None and v != ""}
        tags["Environment"] = environment or self.environment
        tags["ManagedBy"] = self.managed_by
        return tags

    def create(
        self,
        kind: ResourceKind,
        name: str,
        args: typing.Dict[str, typing.Any],
        tags: typing.Optional[typing.Dict[str, typing.Any]] = None,
        environment: typing.Optional[str] = None,
    ) -> Handle:
        if kind in TAGGABLE_KINDS:
            args = {**args, "tags": self.tags(tags, environment)}
        handle = self.engine.create(kind, name, args)
        log.debug("declared resource", kind=kind.value, name=name, stack=self.stack)
        self.registry.add(kind, name, handle)
        return handle

    def attach(
        self, kind: ResourceKind, name: str, args: typing.Dict[str, typing.Any]
    ) -> Handle:
        handle = self.engine.attach(kind, name, args)
        log.debug("declared edge", kind=kind.value, name=name, stack=self.stack)
        self.registry.add(kind, name, handle)
        return handle

    def lookup(self, kind: ResourceKind, name: str, owner: str) -> typing.Optional[Handle]:
        return self.registry.lookup(kind, name, owner)
