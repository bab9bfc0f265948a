"""URL splitting, joining and display helpers.

Request URLs are often only partially templated (``https://{{host}}/x``) and
are not valid until variables are substituted, so nothing here raises on
bad input.  Parsing returns either ``Parsed`` or ``Fallback``; every public
function turns a ``Fallback`` into "pass the input through unchanged".
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from urllib.parse import SplitResult, parse_qsl, unquote, urlencode, urlsplit, urlunsplit

from repost.domain.variables import merge_variables, substitute
from repost.models import Environment

Param = tuple[str, str]

_ENCODED_TOKEN = re.compile(r"%7B%7B([^/#%?]+)%7D%7D")


@dataclass(frozen=True)
class Parsed:
    parts: SplitResult


@dataclass(frozen=True)
class Fallback:
    original: str


def parse_url(text: str) -> Parsed | Fallback:
    """Parse text as an absolute URL.

    A URL is accepted when it has a scheme, a network location and, if a
    port is given, a numeric one.
    """
    try:
        parts = urlsplit(text.strip())
        parts.port  # noqa: B018 - raises ValueError on a non-numeric port
    except ValueError:
        return Fallback(text)
    if not parts.scheme or not parts.netloc:
        return Fallback(text)
    return Parsed(parts)


def split_url(full_url: str) -> tuple[str, list[Param]]:
    """Split a URL into its base (no query, no fragment) and query pairs.

    Pairs keep their order of appearance; repeated keys stay separate.
    """
    result = parse_url(full_url)
    if isinstance(result, Fallback):
        return result.original, []
    parts = result.parts
    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return base, parse_qsl(parts.query, keep_blank_values=True)


def join_url(base_url: str, params: Iterable[Sequence[str]]) -> str:
    """Append params to base_url as an encoded query string.

    Pairs whose key is blank are dropped; keys and values are stripped.
    """
    result = parse_url(base_url)
    if isinstance(result, Fallback):
        return result.original
    pairs = [(key.strip(), value.strip()) for key, value in params if key.strip()]
    if not pairs:
        return base_url
    parts = result.parts
    encoded = urlencode(pairs)
    query = f"{parts.query}&{encoded}" if parts.query else encoded
    path = parts.path or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))


def join_url_with_environment(
    base_url: str,
    params: Iterable[Sequence[str]],
    environments: Sequence[Environment] = (),
) -> str:
    """Build the literal URL to dispatch.

    The base is percent-decoded first so that a previously encoded
    ``%7B%7Bhost%7D%7D`` is seen as ``{{host}}``.  Variables from the
    environments (activation order) are substituted into the base and into
    every param key and value before joining.
    """
    decoded = unquote(base_url)
    pairs = [(key, value) for key, value in params]
    if environments:
        variables = merge_variables(environments)
        decoded = substitute(decoded, variables)
        pairs = [
            (substitute(key.strip(), variables), substitute(value.strip(), variables))
            for key, value in pairs
            if key.strip()
        ]
    return join_url(decoded, pairs)


def for_display(url: str) -> str:
    """Turn encoded ``%7B%7Bname%7D%7D`` placeholders back into ``{{name}}``."""
    return _ENCODED_TOKEN.sub(r"{{\1}}", url)


def display_url(base_url: str, params: Iterable[Sequence[str]]) -> str:
    """Return the human-readable URL shown while a request is edited."""
    return for_display(join_url(base_url, params))


def detach_query(url: str) -> tuple[str, list[Param]]:
    """Cut the query string off url without parsing the rest of it.

    Unlike ``split_url`` this works on templated URLs that are not valid
    yet (``{{base}}/users?id=1``).  The fragment is dropped with the query;
    a URL without ``?`` is returned untouched.
    """
    base, sep, rest = url.partition("?")
    if not sep:
        return url, []
    query = rest.partition("#")[0]
    return base, parse_qsl(query, keep_blank_values=True)
