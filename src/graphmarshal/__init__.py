"""Serialise arbitrary value graphs (including cycles) to JSON-shaped text"""

from __future__ import annotations

from importlib import metadata
from typing import Any, Final, TypeVar

from .decode import load, load_from
from .encode import store, store_to
from .errors import DanglingReferenceWarning, ParseError, UnknownMemberError
from .shapes import (
    Address,
    Char,
    Kind,
    Length,
    Range,
    Ref,
    When,
    register,
    shape_of,
)
from .text import Format

T = TypeVar("T")

# https://packaging.python.org/en/latest/guides/single-sourcing-package-version/
__version__ = metadata.version(__name__)

#: Print the value on one line
COMPACT: Final = Format.COMPACT

#: Pretty print the value
PRETTY: Final = Format.PRETTY


def copy(v: T, shape: Any = None) -> T:
    """Copy a value using its representation.

    ``copy(v, shape)`` is equivalent to ``load(store(v, shape), shape)``.

    Args:
      v:
      shape: The declared shape of *v* (defaults to its type)
    """
    if shape is None:
        shape = type(v)
    res: T = load(store(v, shape), shape)
    return res


__all__ = (
    "Address",
    "Char",
    "Kind",
    "Length",
    "Range",
    "Ref",
    "When",
    "COMPACT",
    "Format",
    "PRETTY",
    "DanglingReferenceWarning",
    "ParseError",
    "UnknownMemberError",
    "copy",
    "load",
    "load_from",
    "register",
    "shape_of",
    "store",
    "store_to",
)
