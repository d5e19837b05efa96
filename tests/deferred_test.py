import pytest

from orgstack.deferred import Deferred, dependencies_of


def test_map_runs_once_resolved():
    d = Deferred(["role"])
    got = d.map(lambda v: v.upper())
    assert not got.resolved
    d.resolve("arn")
    assert got.result() == "ARN"
    assert got.dependencies == {"role"}


def test_then_waits_for_returned_deferred():
    first = Deferred(["a"])
    second = Deferred(["b"])
    got = first.then(lambda v: second.map(lambda w: v + w))
    first.resolve("x")
    assert not got.resolved
    second.resolve("y")
    assert got.result() == "xy"


def test_all_waits_for_every_value():
    a = Deferred(["a"])
    b = Deferred(["b"])
    got = Deferred.all(a, "plain", b)
    a.resolve(1)
    assert not got.resolved
    b.resolve(2)
    assert got.result() == [1, "plain", 2]
    assert got.dependencies == {"a", "b"}


def test_from_input_resolves_nested_structures():
    arn = Deferred(["role"])
    got = Deferred.from_input({"roles": {"r": {"arn": arn, "name": "r"}}, "ids": [arn]})
    arn.resolve("arn:aws:iam::1:role/r")
    want = {
        "roles": {"r": {"arn": "arn:aws:iam::1:role/r", "name": "r"}},
        "ids": ["arn:aws:iam::1:role/r"],
    }
    assert got.result() == want


def test_resolving_twice_fails():
    d = Deferred.of(1)
    with pytest.raises(RuntimeError):
        d.resolve(2)


def test_unresolved_result_fails():
    with pytest.raises(RuntimeError):
        Deferred().result()


def test_dependencies_of_nested_args():
    args = {"role": Deferred(["role"]), "groups": [Deferred(["g1"]), "literal"]}
    assert dependencies_of(args) == {"role", "g1"}
