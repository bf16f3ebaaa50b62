"""
``graphmarshal.shapes``: Runtime type descriptors
=================================================

A :class:`Shape` describes how a value is laid out: what :class:`Kind` of node
it is and, for composite values, the shapes of its children. The encoder and
the decoder never look at a value without the shape it was declared with;
they dispatch on shapes one node at a time.

Shapes are derived from type annotations via :func:`shape_of`:

  >>> shape_of(list[int])
  Sequence(element=Scalar(kind=<Kind.INTEGER: 3>), type=<class 'list'>)

Python annotations cannot express all the kinds we support, for these we rely
on :data:`typing.Annotated`:

+ :data:`Ref` marks a reference to a node that might be shared or be part of
  a cycle.
+ :data:`Char` is a single character.
+ :data:`Address` is an opaque integer (like a handle or an address).
+ ``Annotated[list[T], Length(n)]`` is a fixed size array.
+ ``Annotated[int, Range(low, high)]`` is an integer range.
+ ``Annotated[T, When("tag", value)]`` on a record field makes it a variant
  field: it only exists when the ``tag`` field is ``value``.

Only the declared shape of a value is ever considered: an instance of a
subclass is handled exactly like an instance of the declared class.
"""

from __future__ import annotations

import collections.abc
import copy
import dataclasses
import enum
import functools
import types
import typing
import weakref
from typing import (
    Annotated,
    Any,
    Callable,
    ClassVar,
    Final,
    Iterator,
    Optional,
    Type,
    TypeVar,
)

__all__ = (
    "Kind",
    "Shape",
    "Scalar",
    "String",
    "Enumeration",
    "FixedArray",
    "Sequence",
    "Field",
    "Record",
    "ValueSet",
    "Reference",
    "Opaque",
    "Subrange",
    "Ref",
    "Char",
    "Address",
    "Length",
    "Range",
    "When",
    "shape_of",
    "as_shape",
    "register",
)

T = TypeVar("T")


class Kind(enum.Enum):
    "The kind of a node, used to dispatch while traversing a value."

    BOOLEAN = enum.auto()
    CHARACTER = enum.auto()
    INTEGER = enum.auto()
    FLOAT = enum.auto()
    STRING = enum.auto()
    FIXED_ARRAY = enum.auto()
    SEQUENCE = enum.auto()
    RECORD = enum.auto()
    VALUE_SET = enum.auto()
    ENUMERATION = enum.auto()
    REFERENCE = enum.auto()
    ADDRESS = enum.auto()
    RANGE = enum.auto()


class Tag(enum.Enum):
    "Markers used in :data:`typing.Annotated` annotations"

    REFERENCE = "reference"
    CHARACTER = "character"
    ADDRESS = "address"


@dataclasses.dataclass(frozen=True, slots=True)
class Length:
    """Size of a fixed array: ``Annotated[list[str], Length(5)]``"""

    size: int


@dataclasses.dataclass(frozen=True, slots=True)
class Range:
    """Bounds (inclusive) of an integer range"""

    low: int
    high: int


@dataclasses.dataclass(frozen=True, slots=True)
class When:
    """Make a record field depend on the value of another field.

    Args:
      discriminator: name of the field that selects the variant
      *values: values of the discriminator for which the field is active
    """

    discriminator: str
    values: tuple[Any, ...]

    def __init__(self, discriminator: str, *values: Any) -> None:
        object.__setattr__(self, "discriminator", discriminator)
        object.__setattr__(self, "values", values)


#: A reference to a node that may be shared or be part of a cycle.
Ref = Annotated[Optional[T], Tag.REFERENCE]

#: A single character.
Char = Annotated[str, Tag.CHARACTER]

#: An opaque address-like integer.
Address = Annotated[Optional[int], Tag.ADDRESS]


class Shape:
    """Base class for all the shapes.

    Attributes:
      kind: The kind of the nodes with that shape.
      nullable: Whether :const:`None` is a valid value (encoded as ``null``).
      mutable: Whether the values of that shape can be allocated empty and
        filled in place (via :meth:`allocate`).
    """

    __slots__ = ()

    kind: ClassVar[Kind]
    nullable: ClassVar[bool] = False

    @property
    def mutable(self) -> bool:
        return False

    def zero(self) -> Any:  # pragma: no cover
        "The value used for fields that are missing from a document."
        raise NotImplementedError

    def allocate(self) -> Any:
        "Create an empty value that will be filled in place."
        raise TypeError(f"Values of shape {self!r} are immutable")


@dataclasses.dataclass(frozen=True, slots=True)
class Scalar(Shape):
    """Booleans, characters, integers and floats."""

    kind: Kind  # type: ignore[misc]

    def zero(self) -> Any:
        return _SCALAR_ZEROS[self.kind]


_SCALAR_ZEROS: Final = {
    Kind.BOOLEAN: False,
    Kind.CHARACTER: "\x00",
    Kind.INTEGER: 0,
    Kind.FLOAT: 0.0,
}


@dataclasses.dataclass(frozen=True, slots=True)
class String(Shape):
    """A piece of text, either a :class:`str` or a :class:`bytes`"""

    kind: ClassVar[Kind] = Kind.STRING
    nullable: ClassVar[bool] = True

    type: Type[str] | Type[bytes] = str

    def zero(self) -> Any:
        return self.type()


@dataclasses.dataclass(frozen=True, slots=True)
class Enumeration(Shape):
    kind: ClassVar[Kind] = Kind.ENUMERATION

    type: Type[enum.Enum]

    @property
    def members(self) -> list[enum.Enum]:
        return list(self.type)

    def zero(self) -> Any:
        return self.members[0]

    def ordinal(self, member: enum.Enum) -> int:
        "Position of *member* in the declaration of the enumeration"
        return self.members.index(member)


@dataclasses.dataclass(frozen=True, slots=True)
class FixedArray(Shape):
    kind: ClassVar[Kind] = Kind.FIXED_ARRAY

    element: Shape
    length: int

    @property
    def mutable(self) -> bool:
        return True

    def allocate(self) -> list[Any]:
        return []

    def zero(self) -> list[Any]:
        return [self.element.zero() for _ in range(self.length)]


@dataclasses.dataclass(frozen=True, slots=True)
class Sequence(Shape):
    """A dynamically sized sequence (a :class:`list` or a :class:`tuple`)"""

    kind: ClassVar[Kind] = Kind.SEQUENCE
    nullable: ClassVar[bool] = True

    element: Shape
    type: Type[list[Any]] | Type[tuple[Any, ...]] = list

    @property
    def mutable(self) -> bool:
        return self.type is list

    def allocate(self) -> list[Any]:
        if self.type is not list:
            return Shape.allocate(self)  # type: ignore[no-any-return]
        return []

    def zero(self) -> Any:
        return self.type()


MISSING: Final = dataclasses.MISSING


@dataclasses.dataclass(frozen=True)
class Field:
    """A field in a record.

    Attributes:
      name: The name used as key in the documents
      annotation: The annotation the shape is derived from
      when: Set if this is a variant field
      default: Default value (or :data:`MISSING`)
      default_factory: Function creating the default value (or
        :data:`MISSING`)
    """

    name: str
    annotation: Any
    when: When | None = None
    default: Any = dataclasses.field(default_factory=lambda: MISSING)
    default_factory: Any = dataclasses.field(default_factory=lambda: MISSING)

    @property
    def shape(self) -> Shape:
        return as_shape(self.annotation)

    def initial(self) -> Any:
        "The value of this field when it isn't specified in a document"
        if self.default is not MISSING:
            return self.default
        if self.default_factory is not MISSING:
            return self.default_factory()
        return self.shape.zero()


@dataclasses.dataclass(frozen=True, eq=False)
class Record(Shape):
    """Objects and tuples.

    Dataclasses and classes with annotations are *mutable*: the decoder creates
    an empty instance and then sets its attributes one by one. Tuples (named
    or not) are built once all their fields have been decoded.

    If *declared* is not specified the fields are read from the annotations of
    *type* the first time they are needed (this is what makes recursive
    declarations possible).
    """

    kind: ClassVar[Kind] = Kind.RECORD

    type: type
    declared: tuple[Field, ...] | None = None

    @functools.cached_property
    def fields(self) -> tuple[Field, ...]:
        if self.declared is not None:
            return self.declared
        return tuple(_introspect_fields(self.type))

    @functools.cached_property
    def by_name(self) -> dict[str, Field]:
        return {f.name: f for f in self.fields}

    @property
    def positional(self) -> bool:
        "Anonymous tuples: the fields are accessed by index"
        return self.type is tuple

    @property
    def mutable(self) -> bool:
        return not issubclass(self.type, tuple)

    def get(self, value: Any, field: Field) -> Any:
        if self.positional:
            return value[int(field.name)]
        return getattr(value, field.name)

    def is_active(self, field: Field, lookup: Callable[[str], Any]) -> bool:
        """Is *field* part of the value?

        Args:
          field:
          lookup: get the current value of another field (by name)
        """
        if field.when is None:
            return True
        return bool(lookup(field.when.discriminator) in field.when.values)

    def active_fields(self, value: Any) -> Iterator[Field]:
        for field in self.fields:
            if self.is_active(field, lambda name: getattr(value, name)):
                yield field

    def allocate(self) -> Any:
        if not self.mutable:
            return Shape.allocate(self)
        return self.type.__new__(self.type)

    def set(self, obj: Any, field: Field, value: Any) -> None:
        # Works on frozen dataclasses too.
        object.__setattr__(obj, field.name, value)

    def construct(self, values: dict[str, Any]) -> Any:
        "Build an immutable record from the value of all its fields."
        if self.positional:
            return tuple(values[f.name] for f in self.fields)
        return self.type(**values)

    def zero(self) -> Any:
        values = {f.name: f.initial() for f in self.fields}
        if not self.mutable:
            return self.construct(values)
        obj = self.allocate()
        for f in self.fields:
            self.set(obj, f, values[f.name])
        return obj


@dataclasses.dataclass(frozen=True, slots=True)
class ValueSet(Shape):
    """A set of ordinal values (booleans, characters, integers or enums)"""

    kind: ClassVar[Kind] = Kind.VALUE_SET

    element: Shape
    type: Type[set[Any]] | Type[frozenset[Any]] = set

    @property
    def mutable(self) -> bool:
        return self.type is set

    def allocate(self) -> set[Any]:
        if self.type is not set:
            return Shape.allocate(self)  # type: ignore[no-any-return]
        return set()

    def zero(self) -> Any:
        return self.type()

    def ordinal(self, elt: Any) -> int:
        match skip_range(self.element):
            case Enumeration() as e:
                return e.ordinal(elt)
            case Scalar(kind=Kind.CHARACTER):
                return ord(elt)
            case _:
                return int(elt)

    def from_ordinal(self, ordinal: int) -> Any:
        "Raises :class:`ValueError` if *ordinal* is out of range"
        match skip_range(self.element):
            case Enumeration() as e:
                if not 0 <= ordinal < len(e.members):
                    raise ValueError(
                        f"{ordinal} is not a valid ordinal for "
                        f"{e.type.__name__}"
                    )
                return e.members[ordinal]
            case Scalar(kind=Kind.CHARACTER):
                return chr(ordinal)
            case Scalar(kind=Kind.BOOLEAN):
                if ordinal not in (0, 1):
                    raise ValueError(f"{ordinal} is not a valid boolean")
                return bool(ordinal)
            case _:
                return ordinal


@dataclasses.dataclass(frozen=True, eq=False)
class Reference(Shape):
    """A reference to a node that may be shared.

    The shape of the target is resolved lazily: ``Ref[Node]`` is usually
    found while the shape of ``Node`` is being computed.
    """

    kind: ClassVar[Kind] = Kind.REFERENCE
    nullable: ClassVar[bool] = True

    annotation: Any

    @property
    def target(self) -> Shape:
        return as_shape(self.annotation)

    def zero(self) -> None:
        return None


@dataclasses.dataclass(frozen=True, slots=True)
class Opaque(Shape):
    """An opaque address-like value, it is never dereferenced."""

    kind: ClassVar[Kind] = Kind.ADDRESS
    nullable: ClassVar[bool] = True

    def zero(self) -> None:
        return None


@dataclasses.dataclass(frozen=True, slots=True)
class Subrange(Shape):
    """A range of values of the *base* shape.

    Ranges are handled exactly like their base.
    """

    kind: ClassVar[Kind] = Kind.RANGE

    base: Shape
    low: int
    high: int

    def zero(self) -> Any:
        return self.low


def skip_range(shape: Shape) -> Shape:
    while isinstance(shape, Subrange):
        shape = shape.base
    return shape


DISPATCH_TABLE = weakref.WeakKeyDictionary[type, Shape]()


def register(type: type, shape: Shape) -> Shape:
    """Use *shape* for all the values declared with the type *type*.

    This is useful for classes that cannot be introspected (e.g.: classes
    without annotations)::

        >>> class Point:
        ...     def __init__(self, x, y):
        ...         self.x, self.y = x, y

        >>> _ = register(
        ...     Point,
        ...     Record(Point, (Field("x", int), Field("y", int))),
        ... )
        >>> shape_of(Point).fields[1].name
        'y'

    Args:
      type: The type we are registering the shape for
      shape:
    """
    DISPATCH_TABLE[type] = shape
    shape_of.cache_clear()
    return shape


def _strip_when(annotation: Any) -> tuple[Any, When | None]:
    if typing.get_origin(annotation) is not Annotated:
        return annotation, None
    base, *metadata = typing.get_args(annotation)
    when = None
    rest = []
    for m in metadata:
        if isinstance(m, When):
            when = m
        else:
            rest.append(m)
    if not rest:
        return base, when
    return Annotated[(base, *rest)], when  # type: ignore[return-value]


def _is_classvar(annotation: Any) -> bool:
    return annotation is ClassVar or typing.get_origin(annotation) is ClassVar


def _introspect_fields(cls: type) -> Iterator[Field]:
    hints = typing.get_type_hints(cls, include_extras=True)
    if dataclasses.is_dataclass(cls):
        for f in dataclasses.fields(cls):
            annotation, when = _strip_when(hints[f.name])
            yield Field(
                f.name,
                annotation,
                when=when,
                default=f.default,
                default_factory=f.default_factory,
            )
    elif issubclass(cls, tuple):
        defaults = getattr(cls, "_field_defaults", {})
        for name in cls._fields:  # type: ignore[attr-defined]
            annotation, when = _strip_when(hints[name])
            yield Field(
                name,
                annotation,
                when=when,
                default=defaults.get(name, MISSING),
            )
    else:
        for name, hint in hints.items():
            if _is_classvar(hint):
                continue
            annotation, when = _strip_when(hint)
            default = getattr(cls, name, MISSING)
            # Every instance gets its own copy of the class attribute.
            yield Field(
                name,
                annotation,
                when=when,
                default_factory=(
                    MISSING
                    if default is MISSING
                    else functools.partial(copy.copy, default)
                ),
            )


def _is_record_class(ty: type) -> bool:
    if dataclasses.is_dataclass(ty):
        return True
    if issubclass(ty, tuple):
        return hasattr(ty, "_fields")
    return bool(getattr(ty, "__annotations__", None))


def _unsupported(annotation: Any) -> typing.NoReturn:
    name = getattr(annotation, "__name__", None) or repr(annotation)
    raise TypeError(f"Values of type {name} cannot be handled by graphmarshal")


def _annotated(base: Any, metadata: list[Any]) -> Shape:
    for m in metadata:
        match m:
            case Tag.REFERENCE:
                args = typing.get_args(base)
                if NoneType not in args:
                    raise TypeError(f"References should be optional: {base}")
                [target] = [a for a in args if a is not NoneType]
                return Reference(target)
            case Tag.CHARACTER:
                return Scalar(Kind.CHARACTER)
            case Tag.ADDRESS:
                return Opaque()
            case Length(size):
                shape = _shape_of(base)
                if not isinstance(shape, Sequence) or shape.type is not list:
                    raise TypeError(
                        f"Only lists can have a fixed length: {base}"
                    )
                return FixedArray(shape.element, size)
            case Range(low, high):
                return Subrange(_shape_of(base), low, high)
    # Other metadata is not ours to interpret
    return _shape_of(base)


NoneType: Final = types.NoneType


def _shape_of(annotation: Any) -> Shape:
    if isinstance(annotation, Shape):
        return annotation
    if isinstance(annotation, type) and annotation in DISPATCH_TABLE:
        return DISPATCH_TABLE[annotation]
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    if origin is Annotated:
        base, *metadata = args
        return _annotated(base, metadata)
    if origin in (typing.Union, types.UnionType):
        rest = [a for a in args if a is not NoneType]
        if len(rest) == 1 and len(args) == 2:
            shape = _shape_of(rest[0])
            if shape.nullable:
                return shape
        _unsupported(annotation)
    if origin is list:
        [elt] = args
        return Sequence(_shape_of(elt), list)
    if origin is tuple:
        match args:
            case (elt, rest) if rest is Ellipsis:
                return Sequence(_shape_of(elt), tuple)
            case () | ((),):
                return Record(tuple, ())
            case _:
                return Record(
                    tuple,
                    tuple(
                        Field(str(idx), arg) for idx, arg in enumerate(args)
                    ),
                )
    if origin in (set, frozenset):
        [elt] = args
        elt_shape = _shape_of(elt)
        if skip_range(elt_shape).kind not in (
            Kind.BOOLEAN,
            Kind.CHARACTER,
            Kind.INTEGER,
            Kind.ENUMERATION,
        ):
            raise TypeError(f"Sets can only contain ordinal values: {elt}")
        return ValueSet(elt_shape, origin)
    if annotation in (Callable, collections.abc.Callable) or (
        origin is collections.abc.Callable
    ):
        return Opaque()
    if origin is not None or not isinstance(annotation, type):
        _unsupported(annotation)
    # bool is a subclass of int: it has to be checked first
    if annotation is bool:
        return Scalar(Kind.BOOLEAN)
    if annotation is int:
        return Scalar(Kind.INTEGER)
    if annotation is float:
        return Scalar(Kind.FLOAT)
    if annotation in (str, bytes):
        return String(annotation)
    if issubclass(annotation, enum.Enum):
        return Enumeration(annotation)
    if _is_record_class(annotation):
        return Record(annotation)
    _unsupported(annotation)


@functools.lru_cache(maxsize=None)
def shape_of(annotation: Any) -> Shape:
    """Get the shape for a type annotation.

    Raises:
      TypeError: if there is no shape for *annotation*
    """
    return _shape_of(annotation)


def as_shape(annotation_or_shape: Any) -> Shape:
    "Like :func:`shape_of` but also accepts shapes and unhashable annotations"
    if isinstance(annotation_or_shape, Shape):
        return annotation_or_shape
    try:
        return shape_of(annotation_or_shape)
    except TypeError as e:
        # lru_cache raises on unhashable arguments
        if "unhashable" not in str(e):
            raise
        return _shape_of(annotation_or_shape)
