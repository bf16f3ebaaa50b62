"""
``graphmarshal.encode``: Writing documents
==========================================

The encoder walks a value depth first, guided by its shape, and prints it as
it goes. References are the only nodes whose identity matters: the first time
a target is reached it is printed as ``[handle, value]``, every other time only
its handle is printed:

  >>> from graphmarshal import Ref
  >>> shared = [1, 2]
  >>> print(store([shared, shared, None], list[Ref[list[int]]]))
  [[0, [1, 2]], 0, null]
"""

from __future__ import annotations

import functools
import io
from typing import Any, Iterator, TextIO

from . import text
from .shapes import (
    Enumeration,
    FixedArray,
    Kind,
    Opaque,
    Record,
    Reference,
    Scalar,
    Sequence,
    Shape,
    String,
    Subrange,
    ValueSet,
    as_shape,
    shape_of,
)

__all__ = ("store", "store_to")


def _raw_bytes(s: str | bytes) -> bytes | None:
    """Get the bytes for a string that is not valid utf-8.

    Returns :const:`None` if *s* is valid utf-8 or holds lone surrogates that
    can only be written as escapes.
    """
    if isinstance(s, bytes):
        try:
            s.decode("utf-8")
        except UnicodeDecodeError:
            return s
        return None
    try:
        s.encode("utf-8")
    except UnicodeEncodeError:
        pass
    else:
        return None
    try:
        # Non utf-8 bytes smuggled in a str (e.g.: via `os.fsdecode`).
        return s.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        # Lone surrogates are printed as `\u` escapes.
        return None


def store_to(
    out: TextIO,
    value: Any,
    shape: Any = None,
    *,
    indent: int | None = None,
    format: text.Format | None = None,
) -> None:
    """Serialise *value* to the text stream *out*.

    Args:
      out: where the document is written
      value: The value to serialise
      shape: The declared shape (or type annotation) of *value*. Defaults to
        the type of *value*.
      indent(int | None): indentation (for the :const:`~graphmarshal.PRETTY`
         format)
      format: One of :const:`None`, :const:`~graphmarshal.COMPACT`,
         :const:`~graphmarshal.PRETTY`. If the value is :const:`None` then the
         format will be :const:`~graphmarshal.COMPACT` if *indent* wasn't
         specified and :const:`~graphmarshal.PRETTY` otherwise.
    """
    root = shape_of(type(value)) if shape is None else as_shape(shape)
    printer = text.printer(out, indent=indent, format=format)
    # id -> handle
    visited: dict[int, int] = {}
    # Since we rely on `id` to detect shared references we hold on to all the
    # targets to make sure their addresses do not get reused.
    transient: list[Any] = []
    # ids of the immutable targets currently being printed
    building: set[int] = set()

    def elements(shape: Shape, values: Any) -> Iterator[text.Emit]:
        for v in values:
            yield functools.partial(store, shape, v)

    def fields(shape: Record, value: Any) -> Iterator[tuple[str, text.Emit]]:
        for field in shape.active_fields(value):
            yield field.name, functools.partial(
                store, field.shape, shape.get(value, field)
            )

    def reference(shape: Reference, v: Any) -> None:
        addr = id(v)
        handle = visited.get(addr)
        if handle is not None:
            if addr in building:
                # Immutable values are built after their contents.
                raise ValueError(
                    f"Recursive value found: {type(v).__name__} refers back "
                    "to itself"
                )
            printer.integer(handle)
            return
        handle = visited[addr] = len(visited)
        transient.append(v)
        if not shape.target.mutable:
            building.add(addr)
        printer.sequence(
            (
                functools.partial(printer.integer, handle),
                functools.partial(store, shape.target, v),
            )
        )
        building.discard(addr)

    def store(shape: Shape, v: Any) -> None:
        if v is None and shape.nullable:
            printer.null()
            return
        match shape:
            case Scalar(kind=Kind.BOOLEAN):
                printer.boolean(v)
            case Scalar(kind=Kind.CHARACTER):
                if ord(v) < 128:
                    printer.string(v)
                else:
                    printer.integer(ord(v))
            case Scalar(kind=Kind.INTEGER):
                printer.integer(v)
            case Scalar(kind=Kind.FLOAT):
                printer.floating(v)
            case Subrange(base=base):
                store(base, v)
            case Enumeration():
                printer.string(v.name)
            case String():
                raw = _raw_bytes(v)
                if raw is None:
                    printer.string(v if isinstance(v, str) else v.decode())
                else:
                    printer.sequence(
                        functools.partial(printer.integer, b) for b in raw
                    )
            case FixedArray(element=element) | Sequence(element=element):
                printer.sequence(elements(element, v))
            case Record():
                printer.mapping(fields(shape, v))
            case ValueSet():
                printer.sequence(
                    functools.partial(printer.integer, o)
                    for o in sorted(shape.ordinal(e) for e in v)
                )
            case Reference():
                reference(shape, v)
            case Opaque():
                printer.integer(v if isinstance(v, int) else id(v))
            case _:  # pragma: no cover
                raise TypeError(f"Unknown shape: {shape!r}")

    store(root, value)


def store(
    value: Any,
    shape: Any = None,
    *,
    indent: int | None = None,
    format: text.Format | None = None,
) -> str:
    """Serialise *value* to a string.

    See :func:`store_to` for a description of the arguments.

      >>> print(store([1, 2], list[int]))
      [1, 2]
      >>> print(store([1, 2], list[int], indent=2))
      [
        1,
        2
      ]
    """
    out = io.StringIO()
    store_to(out, value, shape, indent=indent, format=format)
    return out.getvalue()
