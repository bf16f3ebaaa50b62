"""``graphmarshal.errors``: Exceptions and warnings
================================================

All the failures of :func:`~graphmarshal.load` are reported as
:class:`ParseError` (or one of its subclasses) so callers only have to catch
one exception. Errors raised by the underlying stream (:class:`OSError`) are
not wrapped.
"""

from __future__ import annotations

import enum
from typing import Any

__all__ = ("ParseError", "UnknownMemberError", "DanglingReferenceWarning")


class ParseError(ValueError):
    """The document doesn't match the grammar or the shape of the target.

    Attributes:
      msg: The unformatted error message
      expected: What the decoder was expecting (if relevant)
      found: A description of what was actually read (if relevant)
      pos: Offset of the offending token in the document
      lineno: Line of the offending token (starts at 1)
      colno: Column of the offending token (starts at 1)
    """

    msg: str
    expected: str | None
    found: str | None
    pos: int
    lineno: int
    colno: int

    def __init__(
        self,
        msg: str,
        *,
        pos: int,
        lineno: int,
        colno: int,
        expected: str | None = None,
        found: str | None = None,
    ) -> None:
        super().__init__(f"{msg}: line {lineno} column {colno} (char {pos})")
        self.msg = msg
        self.expected = expected
        self.found = found
        self.pos = pos
        self.lineno = lineno
        self.colno = colno

    def __reduce__(self) -> Any:
        return _rebuild, (
            type(self),
            self.msg,
            self.__dict__.copy(),
        )


class UnknownMemberError(ParseError):
    """A string doesn't name any member of the target enumeration."""

    enum: type[enum.Enum] | None
    name: str | None

    def __init__(
        self,
        msg: str,
        *,
        pos: int,
        lineno: int,
        colno: int,
        enum: type[enum.Enum] | None = None,
        name: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(msg, pos=pos, lineno=lineno, colno=colno, **kwargs)
        self.enum = enum
        self.name = name


def _rebuild(cls: type[ParseError], msg: str, state: dict[str, Any]) -> Any:
    "Trampoline used to pickle errors that take keyword only arguments"
    res = cls.__new__(cls)
    ValueError.__init__(
        res,
        f"{msg}: line {state['lineno']} column {state['colno']} "
        f"(char {state['pos']})",
    )
    res.__dict__.update(state)
    return res


class DanglingReferenceWarning(UserWarning):
    """A reference points to an identity that was never defined.

    The reference is loaded as :const:`None`.
    """
