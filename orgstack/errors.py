import typing


class OrgStackError(Exception):
    pass


class ConfigError(OrgStackError):
    pass


class UnsupportedPolicyKindError(OrgStackError):
    def __init__(self, kind: typing.Any):
        self.kind = kind
        super().__init__(f"unsupported policy kind: {kind!r}")


class ReferenceNotFoundError(OrgStackError):
    """
    raised when an upstream stack, or one of its outputs, has not been applied
    """

    def __init__(self, stack: str, key: typing.Optional[str] = None):
        self.stack = stack
        self.key = key
        if key is None:
            msg = f"stack {stack} has not been applied"
        else:
            msg = f"stack {stack} has no output {key}"
        super().__init__(msg)


class UnresolvedLookupError(OrgStackError):
    def __init__(self, kind: str, name: str, owner: str, stack: str = ""):
        self.kind = kind
        self.name = name
        self.owner = owner
        self.stack = stack
        super().__init__(
            f"{owner} references {kind} {name} which is not declared in stack {stack}"
        )


class ProviderConflictError(OrgStackError):
    def __init__(self, kind: str, name: str, reason: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name}: {reason}")
