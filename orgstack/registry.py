import enum
import typing

import structlog

from .engine import Handle
from .errors import UnresolvedLookupError
from .resources import ResourceKind

log = structlog.get_logger()


class LookupPolicy(str, enum.Enum):
    STRICT = "strict"
    LENIENT = "lenient"


class Registry:
    """
    Handles declared by one stack evaluation, looked up by kind and name.

    `known` lists every name the full configuration tables define per kind, so a
    lookup can tell a name that belongs to another environment (skipped
    quietly) from one that is defined nowhere (an unresolved lookup).
    """

    def __init__(
        self,
        stack: str,
        lookups: LookupPolicy = LookupPolicy.LENIENT,
        known: typing.Optional[typing.Dict[ResourceKind, typing.Set[str]]] = None,
    ):
        self.stack = stack
        self.lookups = LookupPolicy(lookups)
        self.known = known or {}
        self._handles: typing.Dict[ResourceKind, typing.Dict[str, Handle]] = {}

    def add(self, kind: ResourceKind, name: str, handle: Handle) -> None:
        self._handles.setdefault(kind, {})[name] = handle

    def get(self, kind: ResourceKind, name: str) -> typing.Optional[Handle]:
        return self._handles.get(kind, {}).get(name)

    def items(self, kind: ResourceKind) -> typing.Dict[str, Handle]:
        return dict(self._handles.get(kind, {}))

    def lookup(self, kind: ResourceKind, name: str, owner: str) -> typing.Optional[Handle]:
        handle = self.get(kind, name)
        if handle is not None:
            return handle
        if name in self.known.get(kind, set()):
            log.debug(
                "reference belongs to another environment",
                kind=kind.value,
                name=name,
                owner=owner,
                stack=self.stack,
            )
            return None
        if self.lookups == LookupPolicy.STRICT:
            raise UnresolvedLookupError(kind.value, name, owner, self.stack)
        log.warning(
            "skipping unresolved reference",
            kind=kind.value,
            name=name,
            owner=owner,
            stack=self.stack,
        )
        return None
