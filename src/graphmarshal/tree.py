"""``graphmarshal.tree``: Documents without shapes
================================================

Read and write documents as plain python values, without any shape.

:mod:`graphmarshal` always needs a shape to load a value. Having access to a
simple, shape-less, representation of a document makes it easier to write
tests and debug applications::

  >>> parse('[0, {"next": 0, "data": [104, 105]}]')
  [0, {'next': 0, 'data': [104, 105]}]
  >>> print(render({"a": [1, 2.5, None]}))
  {"a": [1, 2.5, null]}

Note that references are not resolved: the handles are just integers.

API:
----

"""

from __future__ import annotations

import functools
import io
from typing import Any, Iterator

from . import text
from .text import TokenKind

__all__ = ("Node", "parse", "parse_from", "render")

#:
Node = int | float | None | str | bool | dict[str, Any] | list[Any]


def parse_from(fp: Any) -> Node:
    """Read a document from the text stream *fp*

    Raises:
      ParseError:
    """
    tokens = text.Lexer(fp)

    def expect(kind: TokenKind, what: str) -> text.Token:
        tok = tokens.next()
        if tok.kind is not kind:
            raise tokens.error(
                f"{what} expected", tok, expected=what, found=tok.describe()
            )
        return tok

    def elements(closing: TokenKind, what: str) -> Iterator[None]:
        first = True
        while tokens.peek().kind is not closing:
            if not first:
                expect(TokenKind.COMMA, f"',' or {what}")
            first = False
            yield None
        tokens.next()

    def reduce() -> Node:
        tok = tokens.next()
        match tok.kind:
            case (
                TokenKind.NULL
                | TokenKind.TRUE
                | TokenKind.FALSE
                | TokenKind.INT
                | TokenKind.FLOAT
                | TokenKind.STRING
            ):
                return tok.value  # type: ignore[no-any-return]
            case TokenKind.ARRAY_START:
                return [reduce() for _ in elements(TokenKind.ARRAY_END, "']'")]
            case TokenKind.OBJECT_START:
                acc: dict[str, Any] = {}
                for _ in elements(TokenKind.OBJECT_END, "'}'"):
                    key = expect(TokenKind.STRING, "string for a key").value
                    expect(TokenKind.COLON, "':'")
                    acc[key] = reduce()
                return acc
        raise tokens.error(
            "value expected", tok, expected="value", found=tok.describe()
        )

    res = reduce()
    expect(TokenKind.EOF, "end of document")
    return res


def parse(s: str) -> Node:
    """Read a document from a string

    Args:
      s (str):
    """
    return parse_from(io.StringIO(s))


def _emit(printer: text.Printer, node: Node) -> None:
    match node:
        case None:
            printer.null()
        case bool():
            printer.boolean(node)
        case int():
            printer.integer(node)
        case float():
            printer.floating(node)
        case str():
            printer.string(node)
        case list():
            printer.sequence(functools.partial(_emit, printer, x) for x in node)
        case dict():
            printer.mapping(
                (k, functools.partial(_emit, printer, v))
                for k, v in node.items()
            )
        case _:
            raise TypeError(
                f"Object of type {type(node).__name__} is not a valid node"
            )


def render(
    node: Node, indent: int | None = None, format: text.Format | None = None
) -> str:
    """Print *node* as a document.

    Args:
      node:
      indent(int | None):
      format:
    """
    return text.render(
        functools.partial(_emit, node=node), indent=indent, format=format
    )
