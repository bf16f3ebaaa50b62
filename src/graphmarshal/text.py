"""
``graphmarshal.text``: Tokens in, text out
==========================================

This module contains the two ends of the textual format:

+ :class:`Lexer` turns a character stream into :class:`Token` (with
  positions used in error messages).
+ :class:`CompactPrinter` and :class:`PrettyPrinter` write documents to a
  character stream.

Neither of them know anything about shapes: they only deal with the JSON
layer.

  >>> tokens = Lexer(io.StringIO('[1, "a"]'))
  >>> [t.kind.name for t in tokens]
  ['ARRAY_START', 'INT', 'COMMA', 'STRING', 'ARRAY_END']
"""

from __future__ import annotations

import dataclasses
import enum
import io
import json
import math
import pydoc
import re
from typing import Any, Callable, ClassVar, Final, Iterable, Iterator, TextIO

from . import errors

__all__ = (
    "Format",
    "TokenKind",
    "Token",
    "Lexer",
    "Printer",
    "CompactPrinter",
    "PrettyPrinter",
    "printer",
    "quote",
)

CHUNK_SIZE: Final = 8192

# A number can be followed by up to two characters that are not a number on
# their own ("1e+") but extend it.
LOOKAHEAD: Final = 3


class Format(enum.Enum):
    """Which format to use when writing documents"""

    #: Print the value on one line with no breaks.
    COMPACT = enum.auto()

    #: Break arrays and objects over several indented lines.
    PRETTY = enum.auto()


COMPACT: Final = Format.COMPACT
PRETTY: Final = Format.PRETTY


class TokenKind(enum.Enum):
    NULL = enum.auto()
    TRUE = enum.auto()
    FALSE = enum.auto()
    INT = enum.auto()
    FLOAT = enum.auto()
    STRING = enum.auto()
    ARRAY_START = enum.auto()
    ARRAY_END = enum.auto()
    OBJECT_START = enum.auto()
    OBJECT_END = enum.auto()
    COMMA = enum.auto()
    COLON = enum.auto()
    EOF = enum.auto()


_PUNCTUATION: Final = {
    "[": TokenKind.ARRAY_START,
    "]": TokenKind.ARRAY_END,
    "{": TokenKind.OBJECT_START,
    "}": TokenKind.OBJECT_END,
    ",": TokenKind.COMMA,
    ":": TokenKind.COLON,
}

_LITERALS: Final = {
    "null": (TokenKind.NULL, None),
    "true": (TokenKind.TRUE, True),
    "false": (TokenKind.FALSE, False),
}

# FLOAT has to be tried before INT: the integer part of a float is a valid INT.
_TOKEN_RE: Final = re.compile(
    r"""
      (?P<WS>[\ \t\n\r]+)
    | (?P<STRING>"(?:[^"\\\x00-\x1f]|\\(?:["\\/bfnrt]|u[0-9a-fA-F]{4}))*")
    | (?P<FLOAT>
          -?(?:0|[1-9][0-9]*)
          (?:\.[0-9]+(?:[eE][+-]?[0-9]+)?|[eE][+-]?[0-9]+)
        | NaN
        | -?Infinity
      )
    | (?P<INT>-?(?:0|[1-9][0-9]*))
    | (?P<PUNCT>[\[\]{},:])
    | (?P<LITERAL>true|false|null)
    """,
    re.VERBOSE,
)


@dataclasses.dataclass(slots=True, frozen=True)
class Token:
    """A lexeme along with its position in the source document."""

    kind: TokenKind
    value: Any
    text: str
    pos: int
    lineno: int
    colno: int

    def describe(self) -> str:
        "Human readable description used in error messages"
        if self.kind is TokenKind.EOF:
            return "end of document"
        return f"{self.kind.name.lower()} {pydoc.cram(self.text, 40)}"


class Lexer:
    """Read :class:`Token` from a text stream.

    The stream is read in chunks, a token is only produced once we know
    that it cannot be extended by the next chunk. Once the end of the document
    is reached the lexer keeps on returning :attr:`TokenKind.EOF` tokens.
    """

    __slots__ = (
        "_fp",
        "_buf",
        "_idx",
        "_offset",
        "_lineno",
        "_colno",
        "_eof",
        "_peeked",
    )

    def __init__(self, fp: TextIO) -> None:
        self._fp = fp
        self._buf = ""
        # Position in _buf
        self._idx = 0
        # Offset of _buf[0] in the document
        self._offset = 0
        self._lineno = 1
        self._colno = 1
        self._eof = False
        self._peeked: Token | None = None

    def __iter__(self) -> Iterator[Token]:
        while (tok := self.next()).kind is not TokenKind.EOF:
            yield tok

    def _fill(self) -> None:
        chunk = self._fp.read(CHUNK_SIZE)
        if not chunk:
            self._eof = True
            return
        self._offset += self._idx
        self._buf = self._buf[self._idx :] + chunk
        self._idx = 0

    def _advance(self, text: str) -> None:
        self._idx += len(text)
        newlines = text.count("\n")
        if newlines:
            self._lineno += newlines
            self._colno = len(text) - text.rfind("\n")
        else:
            self._colno += len(text)

    def error(
        self, msg: str, tok: Token | None = None, **kwargs: Any
    ) -> errors.ParseError:
        """Build a :class:`~graphmarshal.errors.ParseError`.

        The error is located at *tok* if given, at the current position
        otherwise.
        """
        if tok is None:
            return errors.ParseError(
                msg,
                pos=self._offset + self._idx,
                lineno=self._lineno,
                colno=self._colno,
                **kwargs,
            )
        return errors.ParseError(
            msg, pos=tok.pos, lineno=tok.lineno, colno=tok.colno, **kwargs
        )

    def _scan(self) -> Token:
        while True:
            m = _TOKEN_RE.match(self._buf, self._idx)
            short = m is None or len(self._buf) - m.end() < LOOKAHEAD
            if short and not self._eof:
                self._fill()
                continue
            if m is None:
                if self._idx >= len(self._buf):
                    return Token(
                        TokenKind.EOF,
                        None,
                        "",
                        self._offset + self._idx,
                        self._lineno,
                        self._colno,
                    )
                if self._buf[self._idx] == '"':
                    raise self.error("Unterminated or malformed string")
                raise self.error(
                    "Unexpected character",
                    found=repr(self._buf[self._idx]),
                )
            text = m.group()
            if m.lastgroup == "WS":
                self._advance(text)
                continue
            pos = self._offset + self._idx
            lineno, colno = self._lineno, self._colno
            self._advance(text)
            match m.lastgroup:
                case "STRING":
                    kind, value = TokenKind.STRING, json.loads(text)
                case "FLOAT":
                    kind, value = TokenKind.FLOAT, float(text)
                case "INT":
                    kind, value = TokenKind.INT, int(text)
                case "PUNCT":
                    kind, value = _PUNCTUATION[text], text
                case "LITERAL":
                    kind, value = _LITERALS[text]
                case _:  # pragma: no cover
                    assert False, m.lastgroup
            return Token(kind, value, text, pos, lineno, colno)

    def peek(self) -> Token:
        "Return the next token without consuming it"
        if self._peeked is None:
            self._peeked = self._scan()
        return self._peeked

    def next(self) -> Token:
        "Consume the next token"
        tok = self.peek()
        self._peeked = None
        return tok


_SURROGATE: Final = re.compile("[\ud800-\udfff]")


def quote(s: str) -> str:
    """Quote and escape a string.

    Lone surrogates cannot be encoded in utf-8 and get escaped:

    >>> print(quote('say "hi"'))
    "say \\"hi\\""
    >>> print(quote("x\\ud800"))
    "x\\ud800"
    """
    return _SURROGATE.sub(
        lambda m: f"\\u{ord(m.group()):04x}", json.dumps(s, ensure_ascii=False)
    )


Emit = Callable[[], None]


class Printer:
    """Write a document to a stream.

    Composite values are printed from iterables of callbacks: each callback
    prints one child. This lets the printer insert separators (and
    indentation) between children that are printed by someone else.
    """

    NAN: ClassVar[str] = "NaN"
    INFINITY: ClassVar[str] = "Infinity"

    out: TextIO

    def __init__(self, out: TextIO) -> None:
        self.out = out

    def write(self, text: str) -> None:
        self.out.write(text)

    def null(self) -> None:
        self.write("null")

    def boolean(self, b: bool) -> None:
        self.write("true" if b else "false")

    def integer(self, i: int) -> None:
        self.write(str(int(i)))

    def floating(self, f: float) -> None:
        f = float(f)
        if math.isfinite(f):
            self.write(repr(f))
        elif math.isnan(f):
            self.write(self.NAN)
        elif f > 0:
            self.write(self.INFINITY)
        else:
            self.write("-" + self.INFINITY)

    def string(self, s: str) -> None:
        self.write(quote(s))

    def open(self, opar: str) -> None:
        self.write(opar)

    def separate(self, first: bool) -> None:
        if not first:
            self.write(", ")

    def close(self, cpar: str, empty: bool) -> None:
        self.write(cpar)

    def sequence(self, items: Iterable[Emit]) -> None:
        self.open("[")
        first = True
        for emit in items:
            self.separate(first)
            emit()
            first = False
        self.close("]", empty=first)

    def mapping(self, items: Iterable[tuple[str, Emit]]) -> None:
        self.open("{")
        first = True
        for key, emit in items:
            self.separate(first)
            self.string(key)
            self.write(": ")
            emit()
            first = False
        self.close("}", empty=first)


class CompactPrinter(Printer):
    "Print the whole document on one line."


class PrettyPrinter(Printer):
    "Print every child of a non-empty array or object on its own line."

    indent: int
    depth: int

    def __init__(self, out: TextIO, indent: int = 4) -> None:
        super().__init__(out)
        self.indent = indent
        self.depth = 0

    def _newline(self) -> None:
        self.write("\n" + " " * (self.indent * self.depth))

    def open(self, opar: str) -> None:
        self.write(opar)
        self.depth += 1

    def separate(self, first: bool) -> None:
        if not first:
            self.write(",")
        self._newline()

    def close(self, cpar: str, empty: bool) -> None:
        self.depth -= 1
        if not empty:
            self._newline()
        self.write(cpar)


def printer(
    out: TextIO, indent: int | None = None, format: Format | None = None
) -> Printer:
    """Pick a printer.

    If *format* is :const:`None` the output is :const:`COMPACT` unless an
    *indent* was specified.
    """
    if format is None:
        format = Format.COMPACT if indent is None else Format.PRETTY
    if format == Format.COMPACT:
        return CompactPrinter(out)
    assert format == Format.PRETTY, format
    if indent is None:
        indent = 4
    if indent < 0:
        raise ValueError(f"Invalid indentation: {indent}")
    return PrettyPrinter(out, indent=indent)


def render(emit: Callable[[Printer], None], **kwargs: Any) -> str:
    "Run *emit* on a printer writing to a string and return that string."
    out = io.StringIO()
    emit(printer(out, **kwargs))
    return out.getvalue()
