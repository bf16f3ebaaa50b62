from __future__ import annotations

import io
import math
from typing import Annotated, Any, Callable, NamedTuple, Optional

import pytest

from graphmarshal import (
    PRETTY,
    Address,
    Char,
    Length,
    Range,
    Ref,
    store,
    store_to,
    tree,
)

from . import models


class Person(NamedTuple):
    name: str
    s: int


@pytest.mark.parametrize(
    ("value", "annotation", "expected"),
    [
        (True, bool, "true"),
        (False, bool, "false"),
        (42, int, "42"),
        (-7, int, "-7"),
        (1.5, float, "1.5"),
        (1.0, float, "1.0"),
        (1e20, float, "1e+20"),
        (math.inf, float, "Infinity"),
        (-math.inf, float, "-Infinity"),
        (math.nan, float, "NaN"),
        ("a", Char, '"a"'),
        ("é", Char, "233"),
        ("hi", str, '"hi"'),
        ('say "hi"\n', str, '"say \\"hi\\"\\n"'),
        ("été", str, '"été"'),
        (None, Optional[str], "null"),
        (b"hi", bytes, '"hi"'),
        (models.TE.blah2, models.TE, '"blah2"'),
        (5, Annotated[int, Range(0, 9)], "5"),
        (None, Address, "null"),
        (12, Address, "12"),
    ],
)
def test_primitives(value, annotation, expected):
    assert store(value, annotation) == expected


def test_default_shape_is_the_type():
    assert store(12) == "12"
    assert store(models.Point(1, 2)) == '{"x": 1, "y": 2}'


def test_store_to():
    out = io.StringIO()
    store_to(out, [1, 2], list[int])
    assert out.getvalue() == "[1, 2]"


def test_fixed_array():
    grid = [["test", "1", "2", "3", "4"] for _ in range(5)]
    shape = Annotated[list[Annotated[list[str], Length(5)]], Length(5)]
    row = '["test", "1", "2", "3", "4"]'
    assert store(grid, shape) == "[" + ", ".join([row] * 5) + "]"


def test_tuple_record():
    assert (
        store(Person("tuple test", 56)) == '{"name": "tuple test", "s": 56}'
    )


def test_anonymous_tuple():
    assert store((1, "a"), tuple[int, str]) == '{"0": 1, "1": "a"}'


def test_sequences():
    assert store([], list[int]) == "[]"
    assert store(None, Optional[list[int]]) == "null"
    assert store((1, 2), tuple[int, ...]) == "[1, 2]"


def test_variant_fields():
    active = models.TestObj(test=1, asd=2, test2=models.TE.blah, help="x")
    assert (
        store(active) == '{"test": 1, "asd": 2, "test2": "blah", "help": "x"}'
    )
    inactive = models.TestObj(test=1, asd=2, test2=models.TE.blah2)
    assert store(inactive) == '{"test": 1, "asd": 2, "test2": "blah2"}'


def test_value_sets():
    assert store({"z", "a"}, set[Char]) == "[97, 122]"
    colors = frozenset({models.Color.BLUE, models.Color.RED})
    assert store(colors, frozenset[models.Color]) == "[0, 2]"
    assert store({True}, set[bool]) == "[1]"
    assert store(set(), set[int]) == "[]"


def test_invalid_utf8():
    assert store(b"\xff\xfeok", bytes) == "[255, 254, 111, 107]"
    smuggled = b"\xffa".decode("utf-8", "surrogateescape")
    assert store(smuggled, str) == "[255, 97]"
    assert store("\ud800", str) == '"\\ud800"'


def test_declared_shape_only():
    assert store(models.Derived(a=1, b=2), models.Base) == '{"a": 1}'


def test_shared_reference():
    shared = [1, 2]
    assert (
        store([shared, shared, None], list[Ref[list[int]]])
        == "[[0, [1, 2]], 0, null]"
    )


def test_equal_but_distinct_targets():
    assert (
        store([[1], [1]], list[Ref[list[int]]]) == "[[0, [1]], [1, [1]]]"
    )


def test_ring():
    assert store(models.build_list(), Ref[models.Node]) == (
        '[0, {"next": [1, {"next": [2, {"next": 0, "prev": 1, '
        '"data": "prev"}], "prev": 0, "data": "next"}], "prev": 2, '
        '"data": "middle"}]'
    )


def test_self_cycle():
    node = models.Node(data="x")
    node.next = node
    assert (
        store(node, Ref[models.Node])
        == '[0, {"next": 0, "prev": null, "data": "x"}]'
    )


def test_handles_are_per_call():
    node = models.Node()
    first = store(node, Ref[models.Node])
    assert store(node, Ref[models.Node]) == first


def test_callable():
    assert isinstance(tree.parse(store(print, Callable[..., Any])), int)


def test_pretty():
    assert store([1], list[int], format=PRETTY) == "[\n    1\n]"
    assert store(models.Point(1, 2), indent=2) == '{\n  "x": 1,\n  "y": 2\n}'
    assert store([], list[int], indent=2) == "[]"


def test_pretty_nested():
    assert store([[1, 2], []], list[list[int]], indent=1) == (
        "[\n [\n  1,\n  2\n ],\n []\n]"
    )


def test_bad_indent():
    with pytest.raises(ValueError, match="Invalid indentation"):
        store(1, int, indent=-1)


def test_output_is_valid_tree():
    value = models.Everything(
        flag=True,
        letter="q",
        count=3,
        ratio=0.5,
        name="n",
        blob=b"b",
        color=models.Color.RED,
        grid=[1, 2, 3],
        items=None,
        frozen=(),
        point=models.Point(0),
        pair=(1, "one"),
        letters={"a"},
        colors=frozenset(),
        digit=9,
    )
    assert tree.parse(store(value)) == {
        "flag": True,
        "letter": "q",
        "count": 3,
        "ratio": 0.5,
        "name": "n",
        "blob": "b",
        "color": "RED",
        "grid": [1, 2, 3],
        "items": None,
        "frozen": [],
        "point": {"x": 0, "y": 0},
        "pair": {"0": 1, "1": "one"},
        "letters": [97],
        "colors": [],
        "digit": 9,
    }
