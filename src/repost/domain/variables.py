"""Pure functions for ``{{variable}}`` substitution.

A token is ``{{`` followed by one or more characters other than ``}``
followed by ``}}``.  The name inside is stripped before lookup, so
``{{ host }}`` and ``{{host}}`` are the same variable.  Substitution is a
single pass: a substituted value that itself contains ``{{...}}`` is not
expanded again.
"""

import re
from collections.abc import Iterable, Mapping

from repost.models import Environment

_TOKEN = re.compile(r"\{\{([^}]+)\}\}")


def merge_variables(environments: Iterable[Environment]) -> dict[str, str]:
    """Merge variables from environments given in activation order.

    On a key collision the later environment wins.
    """
    merged: dict[str, str] = {}
    for environment in environments:
        merged.update(environment.variables)
    return merged


def substitute(text: str, variables: Mapping[str, str]) -> str:
    """Replace every known ``{{name}}`` token in text.

    Unknown names are left verbatim, braces included.
    """
    if not text or not variables:
        return text

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        if name in variables:
            return variables[name]
        return match.group(0)

    return _TOKEN.sub(_replace, text)


def substitute_in_map(mapping: Mapping[str, str], variables: Mapping[str, str]) -> dict[str, str]:
    """Apply ``substitute`` to every value; keys are kept as they are."""
    return {key: substitute(value, variables) for key, value in mapping.items()}


def has_variables(text: str) -> bool:
    return bool(text) and _TOKEN.search(text) is not None


def extract_variable_names(text: str) -> list[str]:
    """Return token names in first-occurrence order, duplicates included."""
    if not text:
        return []
    return [match.group(1).strip() for match in _TOKEN.finditer(text)]


def missing_variables(text: str, variables: Mapping[str, str]) -> list[str]:
    """Return the token names in text that variables does not define."""
    return [name for name in extract_variable_names(text) if name not in variables]
