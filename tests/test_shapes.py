from __future__ import annotations

import dataclasses
from typing import Annotated, Any, Callable, Optional, Union

import pytest

from graphmarshal import Address, Char, Length, Range, Ref, When, load, store
from graphmarshal import shapes
from graphmarshal.shapes import (
    MISSING,
    Enumeration,
    Field,
    FixedArray,
    Kind,
    Opaque,
    Record,
    Reference,
    Scalar,
    Sequence,
    String,
    Subrange,
    ValueSet,
    shape_of,
)

from . import models


@pytest.fixture(autouse=True)
def _auto_clean(monkeypatch):
    monkeypatch.setattr(shapes, "DISPATCH_TABLE", shapes.DISPATCH_TABLE.copy())
    yield
    shapes.shape_of.cache_clear()


class Celsius:
    "Not introspectable: no annotations"

    def __init__(self, degrees):
        self.degrees = degrees


@pytest.mark.parametrize(
    ("annotation", "expected"),
    [
        (bool, Scalar(Kind.BOOLEAN)),
        (int, Scalar(Kind.INTEGER)),
        (float, Scalar(Kind.FLOAT)),
        (Char, Scalar(Kind.CHARACTER)),
        (str, String(str)),
        (Optional[str], String(str)),
        (bytes | None, String(bytes)),
        (models.Color, Enumeration(models.Color)),
        (list[int], Sequence(Scalar(Kind.INTEGER), list)),
        (Optional[list[int]], Sequence(Scalar(Kind.INTEGER), list)),
        (tuple[str, ...], Sequence(String(str), tuple)),
        (
            Annotated[list[bool], Length(3)],
            FixedArray(Scalar(Kind.BOOLEAN), 3),
        ),
        (set[Char], ValueSet(Scalar(Kind.CHARACTER), set)),
        (frozenset[models.TE], ValueSet(Enumeration(models.TE), frozenset)),
        (
            Annotated[int, Range(-1, 1)],
            Subrange(Scalar(Kind.INTEGER), -1, 1),
        ),
        (Address, Opaque()),
        (Callable[[int], int], Opaque()),
        (Callable[..., Any], Opaque()),
        (Annotated[int, "unrelated metadata"], Scalar(Kind.INTEGER)),
    ],
)
def test_shape_of(annotation, expected):
    assert shape_of(annotation) == expected


def test_shape_of_is_cached():
    assert shape_of(models.Node) is shape_of(models.Node)


def test_kinds():
    assert shape_of(models.Point).kind is Kind.RECORD
    assert shape_of(tuple[int, str]).kind is Kind.RECORD
    assert shape_of(Ref[int]).kind is Kind.REFERENCE
    assert shape_of(Address).kind is Kind.ADDRESS
    assert shape_of(Annotated[int, Range(0, 1)]).kind is Kind.RANGE


def test_record_fields():
    shape = shape_of(models.TestObj)
    assert isinstance(shape, Record)
    assert [f.name for f in shape.fields] == ["test", "asd", "test2", "help"]
    variant = shape.by_name["help"]
    assert variant.when == When("test2", models.TE.blah)
    assert variant.shape == String(str)
    assert variant.initial() == ""


def test_named_tuple_fields():
    shape = shape_of(models.Point)
    assert not shape.mutable
    assert [f.name for f in shape.fields] == ["x", "y"]
    assert shape.by_name["y"].initial() == 0


def test_anonymous_tuple():
    shape = shape_of(tuple[int, str])
    assert shape.positional
    assert [f.name for f in shape.fields] == ["0", "1"]
    assert shape.construct({"0": 1, "1": "a"}) == (1, "a")
    assert shape_of(tuple[()]).fields == ()


def test_plain_class_fields():
    shape = shape_of(models.Plain)
    assert shape.mutable
    assert [f.name for f in shape.fields] == ["x", "y"]
    assert shape.by_name["y"].initial() == "default"


def test_field_defaults():
    field = Field("a", int)
    assert field.default is MISSING
    assert field.default_factory is MISSING
    assert field.initial() == 0
    assert Field("a", int, default=3).initial() == 3


def test_recursive():
    shape = shape_of(models.Tree)
    children = shape.by_name["children"].shape
    assert isinstance(children, Sequence)
    assert children.element.type is models.Tree

    ref = shape_of(models.Node).by_name["next"].shape
    assert isinstance(ref, Reference)
    assert ref.target.type is models.Node


def test_zero():
    assert Scalar(Kind.CHARACTER).zero() == "\x00"
    assert FixedArray(Scalar(Kind.INTEGER), 2).zero() == [0, 0]
    assert Enumeration(models.TE).zero() is models.TE.blah
    assert Subrange(Scalar(Kind.INTEGER), 3, 5).zero() == 3
    assert shape_of(models.Point).zero() == models.Point(0, 0)
    assert shape_of(models.Base).zero() == models.Base(0)


def test_allocate():
    assert shape_of(list[int]).allocate() == []
    assert shape_of(set[int]).allocate() == set()
    with pytest.raises(TypeError, match="immutable"):
        shape_of(tuple[int, ...]).allocate()
    with pytest.raises(TypeError, match="immutable"):
        shape_of(models.Point).allocate()


def test_ordinals():
    shape = shape_of(set[models.Color])
    assert shape.ordinal(models.Color.BLUE) == 2
    assert shape.from_ordinal(1) is models.Color.GREEN
    with pytest.raises(ValueError):
        shape.from_ordinal(3)


@pytest.mark.parametrize(
    ("annotation", "msg"),
    [
        (dict[str, int], "cannot be handled"),
        (Optional[int], "cannot be handled"),
        (Union[int, str], "cannot be handled"),
        (Celsius, "Values of type Celsius cannot be handled"),
        (object, "cannot be handled"),
        (set[str], "Sets can only contain ordinal values"),
        (Annotated[tuple[int, ...], Length(2)], "Only lists"),
        (Annotated[int, shapes.Tag.REFERENCE], "References should be"),
    ],
)
def test_unsupported(annotation, msg):
    with pytest.raises(TypeError, match=msg):
        shape_of(annotation)


def test_register():
    with pytest.raises(TypeError):
        store(Celsius(1.5))
    shapes.register(
        Celsius, Record(Celsius, (shapes.Field("degrees", float),))
    )
    assert store(Celsius(1.5)) == '{"degrees": 1.5}'
    res = load('{"degrees": -4.0}', Celsius)
    assert isinstance(res, Celsius)
    assert res.degrees == -4.0


def test_register_overrides_introspection():
    shapes.register(models.Point, String(str))
    assert shape_of(models.Point) == String(str)


@dataclasses.dataclass
class Slotted:
    __slots__ = ("a",)
    a: int


def test_slotted_class():
    res = load('{"a": 1}', Slotted)
    assert res.a == 1
