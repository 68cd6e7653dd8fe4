"""Unique identifier generation for hierarchy records.

A uid is derived from the record's name. When that collides with an
identifier already in use, the record's disambiguation values are tried
in turn, then a numeric suffix.

Example:
    >>> generate_uid("log", [], taken=set())
    'log'
    >>> generate_uid("log", ["function"], taken={"log"})
    'log_function'
    >>> generate_uid("log", [], taken={"log"})
    'log_1'
"""

import re
from collections.abc import Container, Iterable
from typing import Any

_NON_WORD = re.compile(r"\W", re.ASCII)


def normalize(value: Any) -> str:
    """Replace every character outside ``[A-Za-z0-9_]`` with an underscore."""
    return _NON_WORD.sub("_", str(value))


def generate_uid(
    name: str,
    disambiguators: Iterable[Any] = (),
    taken: Container[str] = frozenset(),
) -> str:
    """Derive a uid for ``name`` that is not in ``taken``.

    Args:
        name: Record name; normalized to form the base candidate
        disambiguators: Values appended (normalized, one at a time) to the
            base candidate when it is already taken
        taken: Identifiers already in use. Consulted live, so a mapping
            such as the store index works directly.

    Returns:
        The first free candidate. Both disambiguated and numeric variants
        extend the base candidate, never each other.
    """
    base = normalize(name)
    if base not in taken:
        return base

    for value in disambiguators:
        candidate = f"{base}_{normalize(value)}"
        if candidate not in taken:
            return candidate

    suffix = 1
    while f"{base}_{suffix}" in taken:
        suffix += 1
    return f"{base}_{suffix}"
