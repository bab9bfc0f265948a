"""Domain models.

Every model serialises with camelCase aliases (``activeTabId``,
``bodyType``...) so a persisted snapshot keeps the same shape regardless of
which front-end wrote it.  Attributes are snake_case on the Python side and
either spelling is accepted on input.
"""

import time
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from repost.constants import DEFAULT_MAX_HISTORY_ITEMS, DEFAULT_REQUEST_NAME


def new_id() -> str:
    """Return a short random identifier."""
    return uuid.uuid4().hex[:12]


def now_ms() -> int:
    """Return the current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BodyType(str, Enum):
    JSON = "json"
    XML = "xml"
    TEXT = "text"
    FORM_DATA = "form-data"
    URLENCODED = "x-www-form-urlencoded"


class FormField(_Model):
    """One multipart field.

    ``file`` holds the attached payload for ``type == "file"`` entries.  It is
    never serialised: a snapshot only remembers the file name.
    """

    key: str
    value: str = ""
    type: str = "text"
    file: bytes | None = Field(default=None, exclude=True)
    file_name: str | None = None


class HttpResponse(_Model):
    status: int
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    size: int = 0
    duration: int = 0
    url: str = ""


class HttpRequest(_Model):
    id: str = Field(default_factory=new_id)
    name: str = DEFAULT_REQUEST_NAME
    method: str = "GET"
    url: str = ""
    headers: list[tuple[str, str]] = Field(default_factory=list)
    params: list[tuple[str, str]] = Field(default_factory=list)
    body: str = ""
    body_type: BodyType = BodyType.JSON
    form_data: list[FormField] | None = None
    response: HttpResponse | None = None
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Older snapshots store absent lists and bodies as null.
        if isinstance(data, dict):
            nullable = {"headers", "params", "body", "bodyType", "body_type"}
            data = {k: v for k, v in data.items() if not (k in nullable and v is None)}
        return data


class OriginRef(_Model):
    """Where a tab's request lives inside a collection.

    A tab with an origin saves in place; a tab without one can only be added
    to a collection as a new entry.
    """

    collection_id: str
    request_id: str


class Tab(_Model):
    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_REQUEST_NAME
    request: HttpRequest = Field(default_factory=HttpRequest)
    response: HttpResponse | None = None
    error: HttpResponse | None = None
    is_active: bool = False
    is_loading: bool = False
    origin: OriginRef | None = None

    @model_validator(mode="before")
    @classmethod
    def _origin_from_source_fields(cls, data: Any) -> Any:
        """Accept the flat ``sourceCollectionId``/``sourceRequestId`` pair."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        collection_id = data.pop("sourceCollectionId", None) or data.pop(
            "source_collection_id", None
        )
        request_id = data.pop("sourceRequestId", None) or data.pop("source_request_id", None)
        if data.get("origin") is None and collection_id and request_id:
            data["origin"] = {"collection_id": collection_id, "request_id": request_id}
        return data


class Environment(_Model):
    """A named set of ``{{variable}}`` values.

    Whether an environment is active is decided by the store's activation
    list alone; a legacy ``isActive`` flag in old snapshots is ignored.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=new_id)
    name: str
    variables: dict[str, str] = Field(default_factory=dict)


class Folder(_Model):
    id: str = Field(default_factory=new_id)
    name: str
    requests: list[HttpRequest] = Field(default_factory=list)
    folders: list["Folder"] = Field(default_factory=list)


class Collection(_Model):
    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    requests: list[HttpRequest] = Field(default_factory=list)
    folders: list[Folder] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)


class AppSettings(_Model):
    max_history_items: int = Field(default=DEFAULT_MAX_HISTORY_ITEMS, ge=0)


class AppState(_Model):
    tabs: list[Tab] = Field(default_factory=list)
    active_tab_id: str | None = None
    collections: list[Collection] = Field(default_factory=list)
    environments: list[Environment] = Field(default_factory=list)
    active_environment_ids: list[str] = Field(default_factory=list)
    history: list[HttpRequest] = Field(default_factory=list)
    settings: AppSettings = Field(default_factory=AppSettings)


class MutationKind(Enum):
    TAB_ADDED = auto()
    TAB_REMOVED = auto()
    TAB_ACTIVATED = auto()
    TAB_UPDATED = auto()
    REQUEST_UPDATED = auto()
    REQUEST_STARTED = auto()
    REQUEST_COMPLETED = auto()
    REQUEST_FAILED = auto()
    COLLECTION_ADDED = auto()
    COLLECTION_UPDATED = auto()
    COLLECTION_REMOVED = auto()
    COLLECTIONS_IMPORTED = auto()
    ENVIRONMENT_ADDED = auto()
    ENVIRONMENT_UPDATED = auto()
    ENVIRONMENT_REMOVED = auto()
    ENVIRONMENT_ACTIVATED = auto()
    ENVIRONMENT_DEACTIVATED = auto()
    HISTORY_REMOVED = auto()
    HISTORY_CLEARED = auto()
    SETTINGS_UPDATED = auto()


@dataclass
class Mutation:
    """One entry of the store's mutation log.

    ``target_id`` names the tab, collection or environment the mutation
    touched; history mutations carry the affected index as a string.
    """

    kind: MutationKind
    target_id: str | None = None
