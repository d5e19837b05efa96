import dataclasses
import hashlib
import typing

import structlog

from .deferred import Deferred, dependencies_of
from .errors import ProviderConflictError, ReferenceNotFoundError
from .resources import EDGE_KINDS, ResourceKind

log = structlog.get_logger()


class Handle:
    """
    A declared resource. `id`, `arn` and `name` are deferred values owned by the
    engine that declared it (a Deferred or a pulumi Output).
    """

    def __init__(
        self,
        kind: ResourceKind,
        logical_name: str,
        outputs: typing.Dict[str, typing.Any],
        resource: typing.Any = None,
    ):
        self.kind = kind
        self.logical_name = logical_name
        self.outputs = outputs
        self.resource = resource

    def __repr__(self) -> str:
        return f"Handle({self.kind.value}, {self.logical_name})"

    @property
    def id(self):
        return self.outputs.get("id")

    @property
    def arn(self):
        return self.outputs.get("arn")

    @property
    def name(self):
        return self.outputs.get("name")

    def output(self, key: str):
        return self.outputs[key]


class Engine:
    """
    The provisioning engine a stack is declared against. Implementations turn
    declarations into provider resources; none of them create anything eagerly.
    """

    def create(
        self, kind: ResourceKind, name: str, args: typing.Dict[str, typing.Any]
    ) -> Handle:
        if kind in EDGE_KINDS:
            raise ValueError(f"{kind.value} is an edge, declare it with attach")
        return self.declare(kind, name, args)

    def attach(
        self, kind: ResourceKind, name: str, args: typing.Dict[str, typing.Any]
    ) -> Handle:
        if kind not in EDGE_KINDS:
            raise ValueError(f"{kind.value} is not an edge, declare it with create")
        return self.declare(kind, name, args)

    def declare(
        self, kind: ResourceKind, name: str, args: typing.Dict[str, typing.Any]
    ) -> Handle:
        raise NotImplementedError

    def output(self, value: typing.Any):
        raise NotImplementedError

    def stack_reference(self, stack: str):
        raise NotImplementedError

    def export(self, key: str, value: typing.Any) -> None:
        raise NotImplementedError


@dataclasses.dataclass
class Declaration:
    kind: ResourceKind
    name: str
    args: typing.Dict[str, typing.Any]
    handle: Handle
    depends_on: typing.Set[str]

    @property
    def urn(self) -> str:
        return urn(self.kind, self.name)


def urn(kind: ResourceKind, name: str) -> str:
    return f"{kind.value}::{name}"


@dataclasses.dataclass
class StackState:
    """the inputs of every resource a previous apply created, by urn"""

    resources: typing.Dict[str, typing.Dict[str, typing.Any]] = dataclasses.field(
        default_factory=dict
    )
    outputs: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)


class StackStore:
    """applied stack outputs, looked up by stack name for cross-stack references"""

    def __init__(self):
        self.stacks: typing.Dict[str, StackState] = {}

    def state(self, stack: str) -> StackState:
        return self.stacks.setdefault(stack, StackState())

    def reference(self, stack: str) -> "RecordedStackReference":
        state = self.stacks.get(stack)
        if state is None or not state.outputs:
            raise ReferenceNotFoundError(stack)
        return RecordedStackReference(stack, state.outputs)


class RecordedStackReference:
    def __init__(self, stack: str, outputs: typing.Dict[str, typing.Any]):
        self.stack = stack
        self.outputs = outputs

    def get_output(self, key: str) -> Deferred:
        return Deferred.of(self.outputs.get(key))

    def require_output(self, key: str) -> Deferred:
        if key not in self.outputs:
            raise ReferenceNotFoundError(self.stack, key)
        return Deferred.of(self.outputs[key])


@dataclasses.dataclass
class ApplyResult:
    created: typing.List[str] = dataclasses.field(default_factory=list)
    updated: typing.List[str] = dataclasses.field(default_factory=list)
    unchanged: typing.List[str] = dataclasses.field(default_factory=list)
    deleted: typing.List[str] = dataclasses.field(default_factory=list)
    failed: typing.Dict[str, Exception] = dataclasses.field(default_factory=dict)
    skipped: typing.List[str] = dataclasses.field(default_factory=list)
    order: typing.List[str] = dataclasses.field(default_factory=list)
    outputs: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


# identity prefixes for the resources the recording engine materializes
_IAM_ARN_TYPES = {
    ResourceKind.IAM_POLICY: "policy",
    ResourceKind.IAM_ROLE: "role",
    ResourceKind.IAM_GROUP: "group",
    ResourceKind.IAM_USER: "user",
}


class RecordingEngine(Engine):
    """
    Records declarations in memory and resolves them on `apply`, standing in for
    the real provisioning engine in previews and tests. Ids and ARNs are
    derived from the logical names, so repeated evaluations agree.
    """

    def __init__(
        self,
        stack: str = "preview",
        store: typing.Optional[StackStore] = None,
        account_id: str = "123456789012",
        region: str = "us-east-1",
    ):
        self.stack = stack
        self.store = store if store is not None else StackStore()
        self.account_id = account_id
        self.region = region
        self.declarations: typing.Dict[str, Declaration] = {}
        self.exports: typing.Dict[str, typing.Any] = {}

    def declare(self, kind, name, args) -> Handle:
        key = urn(kind, name)
        if key in self.declarations:
            raise ProviderConflictError(kind.value, name, "declared twice in one stack")
        keys = ["id", "arn", "name"]
        if kind == ResourceKind.ORGANIZATION:
            keys.append("root_id")
        handle = Handle(kind, name, {k: Deferred([name]) for k in keys})
        self.declarations[key] = Declaration(
            kind=kind,
            name=name,
            args=args,
            handle=handle,
            depends_on=dependencies_of(args),
        )
        return handle

    def output(self, value) -> Deferred:
        return Deferred.from_input(value)

    def stack_reference(self, stack: str) -> RecordedStackReference:
        return self.store.reference(stack)

    def export(self, key: str, value) -> None:
        self.exports[key] = value

    def find(
        self, kind: ResourceKind, name: typing.Optional[str] = None
    ) -> typing.List[Declaration]:
        return [
            d
            for d in self.declarations.values()
            if d.kind == kind and (name is None or d.name == name)
        ]

    def apply(self) -> ApplyResult:
        """
        resolves every declaration once all of its inputs have resolved and
        diffs the result against the stack's previous state
        """
        state = self.store.state(self.stack)
        result = ApplyResult()
        physical: typing.Dict[typing.Tuple[ResourceKind, str], str] = {}
        resolved_inputs: typing.Dict[str, typing.Dict[str, typing.Any]] = {}

        def materialize(decl: Declaration, inputs: typing.Dict[str, typing.Any]):
            physical_name = inputs.get("name") or self._autoname(decl)
            if decl.kind not in EDGE_KINDS:
                owner = physical.get((decl.kind, physical_name))
                if owner is not None:
                    result.failed[decl.urn] = ProviderConflictError(
                        decl.kind.value,
                        decl.name,
                        f"physical name {physical_name} is already used by {owner}",
                    )
                    log.error(
                        "resource failed to apply",
                        kind=decl.kind.value,
                        name=decl.name,
                        stack=self.stack,
                        error=str(result.failed[decl.urn]),
                    )
                    return
                physical[(decl.kind, physical_name)] = decl.name

            identity = self._identity(decl.kind, decl.name, physical_name, inputs)
            resolved_inputs[decl.urn] = inputs
            result.order.append(decl.urn)
            for k, d in decl.handle.outputs.items():
                d.resolve(identity.get(k))

        for decl in self.declarations.values():
            Deferred.from_input(decl.args).on_resolved(
                lambda inputs, decl=decl: materialize(decl, inputs)
            )

        for key, decl in self.declarations.items():
            if key in result.failed:
                continue
            if key not in resolved_inputs:
                result.skipped.append(key)
                continue
            previous = state.resources.get(key)
            if previous is None:
                result.created.append(key)
            elif previous != resolved_inputs[key]:
                result.updated.append(key)
            else:
                result.unchanged.append(key)

        for key in state.resources:
            if key not in self.declarations:
                result.deleted.append(key)

        # failed and skipped resources keep their previous state so a re-apply
        # retries them
        retried = set(result.failed) | set(result.skipped)
        kept = {k: v for k, v in state.resources.items() if k in retried}
        kept.update(resolved_inputs)
        state.resources = kept

        exports = Deferred.from_input(self.exports)
        if exports.resolved:
            result.outputs = exports.result()
            state.outputs = result.outputs

        log.info(
            "applied stack",
            stack=self.stack,
            created=len(result.created),
            updated=len(result.updated),
            unchanged=len(result.unchanged),
            deleted=len(result.deleted),
            failed=len(result.failed),
        )
        return result

    def _autoname(self, decl: Declaration) -> str:
        """
        the physical name of a resource declared without one. like pulumi, it
        appends a suffix to the logical name, unique per stack.
        """
        if decl.kind in EDGE_KINDS or decl.kind == ResourceKind.ORGANIZATION:
            return decl.name
        suffix = hashlib.sha1(f"{self.stack}/{decl.urn}".encode()).hexdigest()[:7]
        return f"{decl.name}-{suffix}"

    def _identity(
        self,
        kind: ResourceKind,
        name: str,
        physical_name: str,
        inputs: typing.Dict[str, typing.Any],
    ) -> typing.Dict[str, typing.Any]:
        digest = hashlib.sha1(f"{kind.value}/{name}".encode()).hexdigest()
        account = self.account_id
        if kind == ResourceKind.ORGANIZATION:
            org_id = "o-" + digest[:10]
            return {
                "id": org_id,
                "arn": f"arn:aws:organizations::{account}:organization/{org_id}",
                "name": physical_name,
                "root_id": "r-" + digest[10:14],
            }
        if kind == ResourceKind.ORGANIZATIONAL_UNIT:
            ou_id = f"ou-{digest[:4]}-{digest[4:12]}"
            return {
                "id": ou_id,
                "arn": f"arn:aws:organizations::{account}:ou/{ou_id}",
                "name": physical_name,
            }
        if kind == ResourceKind.ACCOUNT:
            account_id = str(int(digest, 16))[:12]
            return {
                "id": account_id,
                "arn": f"arn:aws:organizations::{account}:account/{account_id}",
                "name": physical_name,
            }
        if kind == ResourceKind.ORGANIZATIONS_POLICY:
            policy_id = "p-" + digest[:8]
            return {
                "id": policy_id,
                "arn": f"arn:aws:organizations::{account}:policy/{policy_id}",
                "name": physical_name,
            }
        if kind in _IAM_ARN_TYPES:
            path = inputs.get("path") or "/"
            arn = f"arn:aws:iam::{account}:{_IAM_ARN_TYPES[kind]}{path}{physical_name}"
            # pulumi reports IAM policies by ARN and other IAM resources by name
            return {
                "id": arn if kind == ResourceKind.IAM_POLICY else physical_name,
                "arn": arn,
                "name": physical_name,
            }
        if kind == ResourceKind.SSM_PARAMETER:
            return {
                "id": physical_name,
                "arn": f"arn:aws:ssm:{self.region}:{account}:parameter{physical_name}",
                "name": physical_name,
            }
        return {"id": f"{name}-{digest[:8]}", "arn": None, "name": name}
