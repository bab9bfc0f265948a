"""Collection import and export.

Exported documents look like:

    {
        "version": "1.0.0",
        "exportedAt": 1700000000000,
        "collections": [ { "id": ..., "name": ..., "requests": [...], ... } ]
    }

Imports only require the ``collections`` array.  Imported collections,
folders and requests always get fresh ids and lose any stored response.
"""

import json
from dataclasses import dataclass

from pydantic import ValidationError

from repost.constants import STORAGE_VERSION
from repost.models import Collection, Folder, HttpRequest, new_id, now_ms


@dataclass
class ImportResult:
    success: bool
    message: str
    count: int = 0


class ImportFailure(Exception):
    """Raised when an import document is unusable."""


def export_collections(collections: list[Collection]) -> str:
    document = {
        "version": STORAGE_VERSION,
        "exportedAt": now_ms(),
        "collections": [c.model_dump(mode="json", by_alias=True) for c in collections],
    }
    return json.dumps(document, indent=2)


def parse_collections(text: str) -> list[Collection]:
    """Validate an export document and return re-identified collections.

    Raises ImportFailure if the text is not JSON, has no ``collections``
    array, or an entry is not a valid collection.
    """
    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFailure(f"Invalid JSON: {exc}") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("collections"), list):
        raise ImportFailure("Invalid format: a 'collections' array is required")

    collections: list[Collection] = []
    for index, entry in enumerate(raw["collections"]):
        try:
            collection = Collection.model_validate(entry)
        except ValidationError as exc:
            raise ImportFailure(f"Invalid collection at index {index}: {exc}") from exc
        collections.append(_reidentify_collection(collection))
    return collections


def _reidentify_collection(collection: Collection) -> Collection:
    stamp = now_ms()
    return collection.model_copy(
        update={
            "id": new_id(),
            "requests": [_reidentify_request(r) for r in collection.requests],
            "folders": [_reidentify_folder(f) for f in collection.folders],
            "created_at": stamp,
            "updated_at": stamp,
        }
    )


def _reidentify_folder(folder: Folder) -> Folder:
    return folder.model_copy(
        update={
            "id": new_id(),
            "requests": [_reidentify_request(r) for r in folder.requests],
            "folders": [_reidentify_folder(f) for f in folder.folders],
        }
    )


def _reidentify_request(request: HttpRequest) -> HttpRequest:
    return request.model_copy(update={"id": new_id(), "response": None})
