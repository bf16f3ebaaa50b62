"""
``graphmarshal.decode``: Reading documents
==========================================

The decoder is a recursive descent parser driven by the shape of the value
being built. Every shared node is recorded in a table (keyed by the handle
found in the document) as soon as it is allocated and *before* its content is
read, this is what makes it possible to load cyclic values:

  >>> from graphmarshal import Ref
  >>> a, b = load("[[3, [7]], 3]", list[Ref[list[int]]])
  >>> a is b
  True
"""

from __future__ import annotations

import io
import warnings
from typing import Any, Final, Iterator, TextIO

from . import errors, text
from .shapes import (
    Enumeration,
    Field,
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
)
from .text import Token, TokenKind

__all__ = ("load", "load_from")


class _Pending:
    "Placeholder for immutable shared values that are being built"

    __slots__ = ()

    def __repr__(self) -> str:
        return "<pending>"


PENDING: Final = _Pending()

MAX_CODE_POINT: Final = 0x10FFFF


def load_from(fp: TextIO, shape: Any) -> Any:
    """Load a value of shape *shape* from the text stream *fp*.

    The stream should contain exactly one document.

    Args:
      fp: stream to read from
      shape: The shape (or type annotation) of the value to load.

    Raises:
      ParseError: if the document is malformed or doesn't match *shape*
    """
    root = as_shape(shape)
    tokens = text.Lexer(fp)
    # handle -> node
    table: dict[int, Any] = {}

    def error(msg: str, tok: Token, **kwargs: Any) -> errors.ParseError:
        return tokens.error(msg, tok, found=tok.describe(), **kwargs)

    def expect(kind: TokenKind, what: str) -> Token:
        tok = tokens.next()
        if tok.kind is not kind:
            raise error(f"{what} expected", tok, expected=what)
        return tok

    def items(closing: TokenKind, what: str) -> Iterator[Token]:
        """Iterate over the elements of an array or an object.

        The opening bracket should already have been consumed, this generator
        checks (and consumes) the separators and the closing bracket. Every
        value it yields is the first token of an element; that token has not
        been consumed yet.
        """
        first = True
        while True:
            tok = tokens.peek()
            if tok.kind is closing:
                tokens.next()
                return
            if not first:
                expect(TokenKind.COMMA, f"',' or {what}")
                tok = tokens.peek()
            if tok.kind is TokenKind.EOF:
                raise error(f"{what} expected", tok, expected=what)
            first = False
            yield tok

    def integer(what: str) -> tuple[int, Token]:
        tok = expect(TokenKind.INT, what)
        return tok.value, tok

    def character() -> str:
        tok = tokens.next()
        if tok.kind is TokenKind.STRING and len(tok.value) == 1:
            return str(tok.value)
        if tok.kind is TokenKind.INT and 0 <= tok.value <= MAX_CODE_POINT:
            return chr(tok.value)
        raise error(
            "string of length 1 expected for a char",
            tok,
            expected="character",
        )

    def enumeration(shape: Enumeration) -> Any:
        tok = tokens.next()
        if tok.kind is not TokenKind.STRING:
            raise error(
                "string expected for an enum", tok, expected="enum member"
            )
        try:
            return shape.type[tok.value]
        except KeyError:
            raise errors.UnknownMemberError(
                f"{shape.type.__name__} has no member named {tok.value!r}",
                pos=tok.pos,
                lineno=tok.lineno,
                colno=tok.colno,
                enum=shape.type,
                name=tok.value,
                expected=f"member of {shape.type.__name__}",
                found=tok.describe(),
            ) from None

    def string(shape: String) -> Any:
        tok = tokens.next()
        match tok.kind:
            case TokenKind.NULL:
                return None
            case TokenKind.STRING:
                if shape.type is not bytes:
                    return tok.value
                try:
                    return tok.value.encode("utf-8")
                except UnicodeEncodeError:
                    raise error("string is not valid utf-8", tok) from None
            case TokenKind.ARRAY_START:
                raw = bytearray()
                for tok in items(TokenKind.ARRAY_END, "']'"):
                    code, tok = integer("char code")
                    if not 0 <= code <= 255:
                        raise error(f"invalid char code: {code}", tok)
                    raw.append(code)
                if shape.type is bytes:
                    return bytes(raw)
                return raw.decode("utf-8", "surrogateescape")
        raise error("string expected", tok, expected="string")

    def value_set(shape: ValueSet, acc: Any) -> None:
        expect(TokenKind.ARRAY_START, "'[' for a set")
        for _ in items(TokenKind.ARRAY_END, "']'"):
            ordinal, tok = integer("int for a set")
            try:
                acc.add(shape.from_ordinal(ordinal))
            except ValueError as e:
                raise error(str(e), tok) from None

    def record(shape: Record, obj: Any) -> None:
        """Read the fields of a record.

        If *obj* is a dict the fields are stored in it, otherwise they are set
        on *obj* directly.
        """
        seen: dict[str, Any] = {}
        # field name -> token of its key in the document
        keys: dict[str, Token] = {}

        def lookup(name: str) -> Any:
            if name in seen:
                return seen[name]
            return shape.by_name[name].initial()

        def check_active(field: Field, tok: Token) -> None:
            when = field.when
            if when is None or shape.is_active(field, lookup):
                return
            raise error(
                f"field {field.name!r} is not valid when "
                f"{when.discriminator!r} is "
                f"{lookup(when.discriminator)!r}",
                tok,
            )

        expect(TokenKind.OBJECT_START, "'{' for an object")
        for _ in items(TokenKind.OBJECT_END, "'}'"):
            tok = expect(TokenKind.STRING, "string for a field name")
            name = tok.value
            expect(TokenKind.COLON, "':'")
            field = shape.by_name.get(name)
            if field is None:
                raise error(
                    f"{shape.type.__name__} has no field named {name!r}", tok
                )
            if name in seen:
                raise error(f"duplicate field {name!r}", tok)
            check_active(field, tok)
            keys[name] = tok
            value = seen[name] = read(field.shape)
            if not isinstance(obj, dict):
                shape.set(obj, field, value)
        # The discriminator might have been changed after a variant field.
        for name, tok in keys.items():
            check_active(shape.by_name[name], tok)
        for field in shape.fields:
            if field.name in seen:
                continue
            value = field.initial()
            if isinstance(obj, dict):
                obj[field.name] = value
            else:
                shape.set(obj, field, value)
        if isinstance(obj, dict):
            obj.update(seen)

    def fill(shape: Shape, obj: Any) -> None:
        "Read the content of a mutable value"
        match shape:
            case FixedArray(element=element, length=length):
                expect(TokenKind.ARRAY_START, "'[' for an array")
                for tok in items(TokenKind.ARRAY_END, "']'"):
                    if len(obj) == length:
                        raise error(
                            f"']' expected after {length} elements",
                            tok,
                            expected="']'",
                        )
                    obj.append(read(element))
                if len(obj) != length:
                    raise tokens.error(
                        f"array of {length} elements expected, got {len(obj)}"
                    )
            case Sequence(element=element):
                expect(TokenKind.ARRAY_START, "'[' for a seq")
                for _ in items(TokenKind.ARRAY_END, "']'"):
                    # Grow the sequence before reading the element.
                    obj.append(PENDING)
                    obj[-1] = read(element)
            case Record():
                record(shape, obj)
            case ValueSet():
                value_set(shape, obj)
            case _:  # pragma: no cover
                raise TypeError(f"Cannot fill a value of shape {shape!r}")

    def build(shape: Shape) -> Any:
        "Read an immutable composite value"
        match shape:
            case Sequence(element=element, type=ty):
                expect(TokenKind.ARRAY_START, "'[' for a seq")
                return ty(
                    read(element) for _ in items(TokenKind.ARRAY_END, "']'")
                )
            case Record():
                values: dict[str, Any] = {}
                record(shape, values)
                return shape.construct(values)
            case ValueSet(type=ty):
                acc: set[Any] = set()
                value_set(shape, acc)
                return ty(acc)
            case _:  # pragma: no cover
                raise TypeError(f"Cannot build a value of shape {shape!r}")

    def reference(shape: Reference) -> Any:
        tok = tokens.next()
        match tok.kind:
            case TokenKind.NULL:
                return None
            case TokenKind.INT:
                if tok.value not in table:
                    warnings.warn(
                        f"Reference to an undefined node: {tok.value} at line "
                        f"{tok.lineno} column {tok.colno}",
                        errors.DanglingReferenceWarning,
                        stacklevel=2,
                    )
                    return None
                node = table[tok.value]
                if node is PENDING:
                    raise error(
                        f"reference {tok.value} points to a value that is "
                        "still being built",
                        tok,
                    )
                return node
            case TokenKind.ARRAY_START:
                handle, htok = integer("index for ref type")
                if handle in table:
                    raise error(f"identity {handle} defined twice", htok)
                expect(TokenKind.COMMA, "','")
                target = shape.target
                if target.mutable:
                    node = table[handle] = target.allocate()
                    fill(target, node)
                else:
                    table[handle] = PENDING
                    node = table[handle] = read(target)
                expect(TokenKind.ARRAY_END, "']' end of ref-address pair")
                return node
        raise error(
            "int for pointer type expected", tok, expected="reference"
        )

    def read(shape: Shape) -> Any:
        tok = tokens.peek()
        nullable = isinstance(shape, (Sequence, Opaque))
        if nullable and tok.kind is TokenKind.NULL:
            tokens.next()
            return None
        match shape:
            case Scalar(kind=Kind.BOOLEAN):
                tok = tokens.next()
                if tok.kind is TokenKind.TRUE:
                    return True
                if tok.kind is TokenKind.FALSE:
                    return False
                raise error(
                    "'true' or 'false' expected for a bool",
                    tok,
                    expected="boolean",
                )
            case Scalar(kind=Kind.CHARACTER):
                return character()
            case Scalar(kind=Kind.INTEGER):
                value, _ = integer("int")
                return value
            case Scalar(kind=Kind.FLOAT):
                tok = expect(TokenKind.FLOAT, "float")
                return tok.value
            case Subrange(base=base):
                return read(base)
            case Enumeration():
                return enumeration(shape)
            case String():
                return string(shape)
            case Reference():
                return reference(shape)
            case Opaque():
                tok = expect(TokenKind.INT, "int for pointer type")
                return tok.value
        if shape.mutable:
            obj = shape.allocate()
            fill(shape, obj)
            return obj
        return build(shape)

    res = read(root)
    expect(TokenKind.EOF, "end of document")
    return res


def load(s: str, shape: Any) -> Any:
    """Load a value of shape *shape* from the string *s*.

      >>> load('{"0": 1, "1": "a"}', tuple[int, str])
      (1, 'a')

    Args:
      s (str):
      shape: The shape (or type annotation) of the value to load.
    """
    return load_from(io.StringIO(s), shape)
