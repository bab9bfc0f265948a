"""Turn an ``HttpRequest`` into a transport-ready descriptor.

``build`` resolves variables from the active environments, merges headers,
infers a Content-Type and encodes the body according to its declared type.
It never raises: malformed JSON is sent as literal text and a missing
environment simply means no substitution.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import unquote

from repost.constants import BODY_METHODS, CONTENT_TYPE_BY_BODY_TYPE
from repost.domain.urls import join_url_with_environment
from repost.domain.variables import merge_variables, substitute
from repost.models import BodyType, Environment, FormField, HttpRequest

CONTENT_TYPE = "Content-Type"


@dataclass
class MultipartField:
    """A multipart form field; ``file`` is set for file uploads."""

    key: str
    value: str = ""
    file: bytes | None = None
    file_name: str | None = None

    @property
    def is_file(self) -> bool:
        return self.file is not None


@dataclass
class TransportDescriptor:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | list[MultipartField] | None = None


def build(request: HttpRequest, environments: Sequence[Environment] = ()) -> TransportDescriptor:
    """Resolve request against environments (activation order)."""
    variables = merge_variables(environments)
    method = request.method.upper()
    url = join_url_with_environment(request.url, request.params, environments)
    headers = resolve_headers(request.headers, variables)
    body_text = substitute(request.body, variables) if request.body else ""

    body: str | list[MultipartField] | None = None
    if method in BODY_METHODS:
        if request.body_type == BodyType.FORM_DATA:
            if request.form_data or body_text:
                body = encode_form_data(request.form_data, body_text, variables)
                _drop_header(headers, CONTENT_TYPE)
        elif body_text:
            if not _has_header(headers, CONTENT_TYPE) and body_text.strip():
                headers[CONTENT_TYPE] = infer_content_type(request.body_type, body_text)
            if request.body_type == BodyType.URLENCODED:
                body = filter_urlencoded(body_text)
            else:
                body = body_text

    return TransportDescriptor(method=method, url=url, headers=headers, body=body)


def resolve_headers(pairs: Sequence[Sequence[str]], variables: dict[str, str]) -> dict[str, str]:
    """Drop blank pairs and substitute variables into keys and values.

    A repeated key keeps its last value.
    """
    headers: dict[str, str] = {}
    for key, value in pairs:
        if not key.strip() or not value.strip():
            continue
        headers[substitute(key, variables)] = substitute(value, variables)
    return headers


def _reject_constant(name: str) -> float:
    raise ValueError(f"{name} is not valid JSON")


def infer_content_type(body_type: BodyType, body: str) -> str:
    """Return the Content-Type implied by a body type.

    Plain text bodies are sniffed: valid JSON is sent as application/json.
    """
    known = CONTENT_TYPE_BY_BODY_TYPE.get(BodyType(body_type).value)
    if known is not None:
        return known
    try:
        json.loads(body, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return "text/plain"
    return "application/json"


def filter_urlencoded(body: str) -> str:
    """Remove ``key=value`` pairs whose key is empty or all whitespace."""
    return "&".join(pair for pair in body.split("&") if pair.partition("=")[0].strip())


def parse_urlencoded(body: str) -> list[tuple[str, str]]:
    """Decode a ``k=v&k2=v2`` string into pairs, skipping blank keys."""
    pairs: list[tuple[str, str]] = []
    for pair in body.split("&"):
        key, _, value = pair.partition("=")
        if key.strip():
            pairs.append((unquote(key), unquote(value)))
    return pairs


def encode_form_data(
    form_data: list[FormField] | None,
    body: str,
    variables: dict[str, str],
) -> list[MultipartField]:
    """Build multipart fields from structured form data or the raw body.

    Structured entries win; the body is only parsed as ``k=v`` pairs when
    there are none.  Entries with a blank key are skipped.
    """
    fields: list[MultipartField] = []
    if form_data:
        for entry in form_data:
            if not entry.key.strip():
                continue
            if entry.type == "file" and entry.file is not None:
                fields.append(
                    MultipartField(key=entry.key, file=entry.file, file_name=entry.file_name)
                )
            else:
                value = substitute(entry.value, variables)
                fields.append(MultipartField(key=entry.key, value=value))
        return fields
    return [MultipartField(key=key, value=value) for key, value in parse_urlencoded(body)]


def _has_header(headers: dict[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def _drop_header(headers: dict[str, str], name: str) -> None:
    for key in [k for k in headers if k.lower() == name.lower()]:
        del headers[key]
