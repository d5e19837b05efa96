import typing


class Deferred:
    """
    A value produced by a declared resource, available only once that
    resource has been created.

    Callbacks registered with `map`, `then` or `apply` run as soon as the value
    resolves, in registration order. A producer always resolves before any of
    its consumers observe the value; nothing is guaranteed about the order of
    independent values.

    `dependencies` holds the logical names of the resources this value waits on,
    so a consumer declared with it as an input implicitly depends on them.
    """

    def __init__(self, dependencies: typing.Iterable[str] = ()):
        self._dependencies: typing.Set[str] = set(dependencies)
        self._resolved = False
        self._value: typing.Any = None
        self._callbacks: typing.List[typing.Callable[[typing.Any], None]] = []

    def __repr__(self) -> str:
        if self._resolved:
            return f"Deferred({self._value!r})"
        return f"Deferred(<pending on {sorted(self._dependencies)}>)"

    @classmethod
    def of(cls, value: typing.Any) -> "Deferred":
        d = cls()
        d.resolve(value)
        return d

    @property
    def dependencies(self) -> typing.FrozenSet[str]:
        return frozenset(self._dependencies)

    @property
    def resolved(self) -> bool:
        return self._resolved

    def result(self) -> typing.Any:
        if not self._resolved:
            raise RuntimeError(f"{self!r} has not resolved yet")
        return self._value

    def resolve(self, value: typing.Any) -> None:
        if self._resolved:
            raise RuntimeError(f"{self!r} resolved twice")
        self._resolved = True
        self._value = value
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb(value)

    def on_resolved(self, cb: typing.Callable[[typing.Any], None]) -> None:
        if self._resolved:
            cb(self._value)
        else:
            self._callbacks.append(cb)

    def map(self, fn: typing.Callable[[typing.Any], typing.Any]) -> "Deferred":
        out = Deferred(self._dependencies)
        self.on_resolved(lambda v: out.resolve(fn(v)))
        return out

    def then(self, fn: typing.Callable[[typing.Any], typing.Any]) -> "Deferred":
        """
        like `map`, but when `fn` returns another Deferred the result waits for it
        """
        out = Deferred(self._dependencies)

        def chain(v):
            result = fn(v)
            if isinstance(result, Deferred):
                out._dependencies.update(result._dependencies)
                result.on_resolved(out.resolve)
            else:
                out.resolve(result)

        self.on_resolved(chain)
        return out

    # same name as pulumi.Output.apply so wiring code runs against either
    apply = then

    @classmethod
    def all(cls, *values: typing.Any) -> "Deferred":
        return _gather(list(values))

    @classmethod
    def from_input(cls, value: typing.Any) -> "Deferred":
        """
        resolves a nested structure of dicts, lists and Deferred values into a
        Deferred of the plain structure
        """
        if isinstance(value, Deferred):
            return value.then(cls.from_input)
        if isinstance(value, dict):
            keys = list(value.keys())
            return _gather([cls.from_input(value[k]) for k in keys]).map(
                lambda resolved: dict(zip(keys, resolved))
            )
        if isinstance(value, (list, tuple)):
            return _gather([cls.from_input(v) for v in value])
        return cls.of(value)


def _gather(values: typing.List[typing.Any]) -> Deferred:
    deps: typing.Set[str] = set()
    for v in values:
        if isinstance(v, Deferred):
            deps.update(v._dependencies)
    out = Deferred(deps)
    results: typing.List[typing.Any] = [None] * len(values)
    pending = {"count": len(values)}

    if not values:
        out.resolve([])
        return out

    def setter(index):
        def set_value(v):
            results[index] = v
            pending["count"] -= 1
            if pending["count"] == 0:
                out.resolve(list(results))

        return set_value

    for i, v in enumerate(values):
        if isinstance(v, Deferred):
            v.on_resolved(setter(i))
        else:
            setter(i)(v)
    return out


def dependencies_of(value: typing.Any) -> typing.Set[str]:
    """
    collects the resource names every Deferred nested in `value` waits on
    """
    if isinstance(value, Deferred):
        return set(value.dependencies)
    deps: typing.Set[str] = set()
    if isinstance(value, dict):
        for v in value.values():
            deps.update(dependencies_of(v))
    elif isinstance(value, (list, tuple)):
        for v in value:
            deps.update(dependencies_of(v))
    return deps
