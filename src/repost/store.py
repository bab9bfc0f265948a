"""The application state store.

``AppStateStore`` owns tabs, collections, environments and history.  Every
change goes through one of its named operations; each operation appends a
``Mutation`` to the log and hands a fresh snapshot to every subscribed
listener (``persistence.AutoSaver`` is the usual one).  Read operations
return deep copies, so nothing outside the store can change its state.

Only ``send_request`` suspends (awaiting the transport).  All other
operations are synchronous and never interleave with each other.
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from repost.constants import NETWORK_ERROR_STATUS_TEXT
from repost.domain.builder import build
from repost.domain.urls import detach_query
from repost.domain.variables import merge_variables
from repost.exchange import ImportFailure, ImportResult, export_collections, parse_collections
from repost.models import (
    AppState,
    BodyType,
    Collection,
    Environment,
    Folder,
    FormField,
    HttpRequest,
    HttpResponse,
    Mutation,
    MutationKind,
    OriginRef,
    Tab,
    new_id,
    now_ms,
)
from repost.persistence import AutoSaver, PersistenceError, PersistenceGateway
from repost.transports import Transport, dispatch

logger = logging.getLogger(__name__)

Listener = Callable[[AppState], None]

# Request fields copied into a collection entry on an in-place save.
_SAVED_FIELDS = ("name", "method", "url", "headers", "params", "body", "body_type", "form_data")

_PROTECTED_TAB_FIELDS = frozenset({"id", "is_active"})
_PROTECTED_COLLECTION_FIELDS = frozenset({"id", "created_at", "updated_at"})


class StoreError(Exception):
    """Base class for errors reported by store operations."""


class ValidationFailure(StoreError):
    """An operation was rejected before it changed anything.

    ``reason`` is a human-readable explanation suitable for display.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AppStateStore:
    """Explicit state container for one user session.

    Args:
        transport: executes requests for ``send_request``.
        state: initial state, typically a loaded snapshot.  It is copied.
        listeners: called with a snapshot after every mutation.
    """

    def __init__(
        self,
        transport: Transport,
        state: AppState | None = None,
        listeners: Iterable[Listener] = (),
    ) -> None:
        self._transport = transport
        self._state = state.model_copy(deep=True) if state is not None else AppState()
        self._listeners: list[Listener] = list(listeners)
        self._mutations: list[Mutation] = []
        self._settle_tabs()

    @classmethod
    async def restore(
        cls,
        gateway: PersistenceGateway,
        transport: Transport,
        autosave: bool = True,
    ) -> tuple["AppStateStore", AutoSaver | None]:
        """Build a store from the gateway's snapshot.

        An unreadable snapshot is logged and an empty state is used instead.
        With ``autosave`` an ``AutoSaver`` on the same gateway is subscribed
        and returned so the caller can ``flush()`` it.
        """
        try:
            state = await gateway.load()
        except PersistenceError:
            logger.exception("Failed to load application state; starting empty")
            state = None
        saver = AutoSaver(gateway) if autosave else None
        store = cls(transport, state, listeners=[saver] if saver else ())
        return store, saver

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> AppState:
        return self._state.model_copy(deep=True)

    @property
    def mutations(self) -> list[Mutation]:
        return list(self._mutations)

    @property
    def tabs(self) -> list[Tab]:
        return [t.model_copy(deep=True) for t in self._state.tabs]

    @property
    def active_tab_id(self) -> str | None:
        return self._state.active_tab_id

    @property
    def active_tab(self) -> Tab | None:
        if self._state.active_tab_id is None:
            return None
        return self.get_tab(self._state.active_tab_id)

    def get_tab(self, tab_id: str) -> Tab | None:
        tab = self._find_tab(tab_id)
        return tab.model_copy(deep=True) if tab is not None else None

    @property
    def collections(self) -> list[Collection]:
        return [c.model_copy(deep=True) for c in self._state.collections]

    def get_collection(self, collection_id: str) -> Collection | None:
        collection = self._find_collection(collection_id)
        return collection.model_copy(deep=True) if collection is not None else None

    @property
    def environments(self) -> list[Environment]:
        return [e.model_copy(deep=True) for e in self._state.environments]

    def get_environment(self, environment_id: str) -> Environment | None:
        environment = self._find_environment(environment_id)
        return environment.model_copy(deep=True) if environment is not None else None

    def find_environment(self, name: str) -> Environment | None:
        """Return the environment with exactly this name, or None."""
        for environment in self._state.environments:
            if environment.name == name:
                return environment.model_copy(deep=True)
        return None

    @property
    def active_environment_ids(self) -> list[str]:
        return list(self._state.active_environment_ids)

    @property
    def active_environments(self) -> list[Environment]:
        """Active environments in activation order.

        Ids that no longer resolve (the environment was deleted behind the
        list's back, e.g. in a hand-edited snapshot) are skipped.
        """
        by_id = {e.id: e for e in self._state.environments}
        return [
            by_id[env_id].model_copy(deep=True)
            for env_id in self._state.active_environment_ids
            if env_id in by_id
        ]

    @property
    def merged_variables(self) -> dict[str, str]:
        return merge_variables(self.active_environments)

    @property
    def history(self) -> list[HttpRequest]:
        return [h.model_copy(deep=True) for h in self._state.history]

    @property
    def max_history_items(self) -> int:
        return self._state.settings.max_history_items

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, kind: MutationKind, target_id: str | None = None) -> None:
        self._mutations.append(Mutation(kind=kind, target_id=target_id))
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener %r failed", listener)

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def add_tab(self, request: HttpRequest | Mapping[str, Any] | None = None) -> Tab:
        """Open a new tab and make it the only active one."""
        if isinstance(request, HttpRequest):
            draft = request.model_copy(deep=True)
        else:
            draft = HttpRequest.model_validate(dict(request or {}))
        draft = _with_query_detached(draft)
        tab = Tab(title=draft.name, request=draft, is_active=True)
        for other in self._state.tabs:
            other.is_active = False
        self._state.tabs.append(tab)
        self._state.active_tab_id = tab.id
        self._commit(MutationKind.TAB_ADDED, tab.id)
        return tab.model_copy(deep=True)

    def remove_tab(self, tab_id: str) -> None:
        """Close a tab.  Closing the active tab activates the first remaining one."""
        if self._find_tab(tab_id) is None:
            return
        self._state.tabs = [t for t in self._state.tabs if t.id != tab_id]
        if self._state.active_tab_id == tab_id:
            self._activate(self._state.tabs[0].id if self._state.tabs else None)
        self._commit(MutationKind.TAB_REMOVED, tab_id)

    def set_active_tab(self, tab_id: str) -> None:
        if self._find_tab(tab_id) is None:
            return
        self._activate(tab_id)
        self._commit(MutationKind.TAB_ACTIVATED, tab_id)

    def update_tab(self, tab_id: str, **fields: Any) -> None:
        """Replace tab-level fields such as ``title`` or ``origin``."""
        protected = _PROTECTED_TAB_FIELDS.intersection(fields)
        if protected:
            raise ValueError(f"cannot update {sorted(protected)} through update_tab")
        tab = self._find_tab(tab_id)
        if tab is None:
            return
        for name, value in fields.items():
            setattr(tab, name, value)
        self._commit(MutationKind.TAB_UPDATED, tab_id)

    def set_tab_origin(self, tab_id: str, origin: OriginRef | None) -> None:
        self.update_tab(tab_id, origin=origin)

    def _activate(self, tab_id: str | None) -> None:
        for tab in self._state.tabs:
            tab.is_active = tab.id == tab_id
        self._state.active_tab_id = tab_id

    def _settle_tabs(self) -> None:
        """Repair tab flags in a freshly loaded state.

        Nothing is in flight after a restart, and exactly one tab (the one
        named by ``active_tab_id``, else the first) is active.
        """
        tabs = self._state.tabs
        for tab in tabs:
            tab.is_loading = False
        active = self._state.active_tab_id
        if active is None or all(t.id != active for t in tabs):
            active = tabs[0].id if tabs else None
        self._activate(active)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def update_request(self, tab_id: str, updates: Mapping[str, Any]) -> None:
        """Shallow-merge updates into the tab's request.

        A ``response`` key replaces the tab's response (used when restoring a
        saved request together with its last response).  A ``url`` carrying a
        query string is split: the query moves into ``params``, after any
        params given in the same update.
        """
        tab = self._find_tab(tab_id)
        if tab is None:
            return
        changes = dict(updates)
        has_response = "response" in changes
        response = changes.pop("response", None)
        if changes.get("id") is None:
            changes.pop("id", None)

        request = tab.request.model_copy(update={**_coerce(changes), "updated_at": now_ms()})
        if "url" in changes and "?" in request.url:
            base, query = detach_query(request.url)
            params = list(request.params) if "params" in changes else []
            request = request.model_copy(update={"url": base, "params": params + query})
        tab.request = request
        if has_response:
            tab.response = _as_response(response)
            tab.error = None
        if changes.get("name"):
            tab.title = changes["name"]
        self._commit(MutationKind.REQUEST_UPDATED, tab_id)

    def set_tab_url(self, tab_id: str, full_url: str) -> None:
        """Write a full URL as typed or pasted; its query string becomes the params."""
        self.update_request(tab_id, {"url": full_url, "params": []})

    def open_request(self, request: HttpRequest, collection_id: str | None = None) -> Tab:
        """Load a history or collection request into the active tab.

        The request's stored response comes along.  When ``collection_id`` is
        given the tab remembers the origin so a later save updates that entry
        in place; otherwise any previous origin is cleared.  Opens a tab if
        there is none.
        """
        tab_id = self._state.active_tab_id
        if tab_id is None:
            tab_id = self.add_tab().id
        restored = request.model_copy(deep=True)
        fields = {name: getattr(restored, name) for name in HttpRequest.model_fields}
        self.update_request(tab_id, fields)
        origin = (
            OriginRef(collection_id=collection_id, request_id=request.id) if collection_id else None
        )
        self.set_tab_origin(tab_id, origin)
        tab = self.get_tab(tab_id)
        if tab is None:
            raise StoreError(f"Tab {tab_id} was closed while opening the request")
        return tab

    async def send_request(self, tab_id: str) -> None:
        """Execute the tab's request against the active environments.

        The outgoing request gets a new id.  On success the response is
        attached to the tab and a snapshot of request + response is put at the
        front of history.  On failure the tab gets a zero-status error payload
        and history is left alone.  Nothing is raised to the caller.
        """
        tab = self._find_tab(tab_id)
        if tab is None:
            return

        environments = self.active_environments
        tab.request = tab.request.model_copy(update={"id": new_id(), "updated_at": now_ms()})
        tab.is_loading = True
        tab.error = None
        outgoing = tab.request.model_copy(deep=True)
        self._commit(MutationKind.REQUEST_STARTED, tab_id)

        descriptor = None
        try:
            descriptor = build(outgoing, environments)
            response = await dispatch(self._transport, descriptor)
        except Exception as exc:
            url = descriptor.url if descriptor is not None else outgoing.url
            logger.warning("Request %s %s failed: %s", outgoing.method, url, exc)
            self._finish_failed(tab_id, _error_payload(exc, url))
            return

        stamp = now_ms()
        entry = outgoing.model_copy(
            update={"response": response, "created_at": stamp, "updated_at": stamp}
        )
        limit = self._state.settings.max_history_items
        self._state.history = [entry, *self._state.history][:limit]

        tab = self._find_tab(tab_id)
        if tab is not None:
            tab.is_loading = False
            tab.response = response
            tab.error = None
        else:
            logger.debug("Tab %s was closed while its request was in flight", tab_id)
        self._commit(MutationKind.REQUEST_COMPLETED, tab_id)

    def _finish_failed(self, tab_id: str, error: HttpResponse) -> None:
        tab = self._find_tab(tab_id)
        if tab is None:
            return
        tab.is_loading = False
        tab.error = error
        self._commit(MutationKind.REQUEST_FAILED, tab_id)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def add_collection(
        self,
        name: str,
        description: str | None = None,
        requests: Iterable[HttpRequest] = (),
        folders: Iterable[Folder] = (),
    ) -> Collection:
        if not name.strip():
            raise ValidationFailure("Collection name cannot be blank")
        collection = Collection(
            name=name.strip(),
            description=description,
            requests=[_without_response(r) for r in requests],
            folders=[f.model_copy(deep=True) for f in folders],
        )
        self._state.collections.append(collection)
        self._commit(MutationKind.COLLECTION_ADDED, collection.id)
        return collection.model_copy(deep=True)

    def update_collection(self, collection_id: str, **fields: Any) -> None:
        protected = _PROTECTED_COLLECTION_FIELDS.intersection(fields)
        if protected:
            raise ValueError(f"cannot update {sorted(protected)} through update_collection")
        collection = self._find_collection(collection_id)
        if collection is None:
            return
        if "name" in fields and not str(fields["name"]).strip():
            raise ValidationFailure("Collection name cannot be blank")
        if "requests" in fields:
            fields["requests"] = [_without_response(r) for r in fields["requests"]]
        for name, value in fields.items():
            setattr(collection, name, value)
        collection.updated_at = now_ms()
        self._commit(MutationKind.COLLECTION_UPDATED, collection_id)

    def remove_collection(self, collection_id: str) -> None:
        """Delete a collection together with every request it holds."""
        if self._find_collection(collection_id) is None:
            return
        self._state.collections = [c for c in self._state.collections if c.id != collection_id]
        for tab in self._state.tabs:
            if tab.origin is not None and tab.origin.collection_id == collection_id:
                tab.origin = None
        self._commit(MutationKind.COLLECTION_REMOVED, collection_id)

    def add_request_to_collection(self, collection_id: str, request: HttpRequest) -> HttpRequest:
        """Append a copy of request to a collection and return the copy.

        The copy always gets a new id and fresh timestamps and never carries a
        response, so the caller can remember it as the origin of a tab.
        """
        collection = self._find_collection(collection_id)
        if collection is None:
            raise ValidationFailure("Select a collection to save the request to")
        stamp = now_ms()
        copy = _without_response(request).model_copy(
            update={"id": new_id(), "created_at": stamp, "updated_at": stamp}
        )
        collection.requests.append(copy)
        collection.updated_at = stamp
        self._commit(MutationKind.COLLECTION_UPDATED, collection_id)
        return copy.model_copy(deep=True)

    def update_request_in_collection(
        self, collection_id: str, request_id: str, updates: Mapping[str, Any]
    ) -> None:
        collection = self._find_collection(collection_id)
        if collection is None:
            return
        changes = _coerce({k: v for k, v in updates.items() if k not in ("id", "response")})
        stamp = now_ms()
        for index, saved in enumerate(collection.requests):
            if saved.id == request_id:
                collection.requests[index] = saved.model_copy(
                    update={**changes, "updated_at": stamp}
                )
                collection.updated_at = stamp
                self._commit(MutationKind.COLLECTION_UPDATED, collection_id)
                return

    def remove_request_from_collection(self, collection_id: str, request_id: str) -> None:
        collection = self._find_collection(collection_id)
        if collection is None:
            return
        collection.requests = [r for r in collection.requests if r.id != request_id]
        collection.updated_at = now_ms()
        self._commit(MutationKind.COLLECTION_UPDATED, collection_id)

    def reorder_requests_in_collection(
        self, collection_id: str, ordered_ids: Sequence[str]
    ) -> None:
        """Reorder requests to match ordered_ids.

        Requests whose id is missing from ordered_ids are dropped; the caller
        passes the complete id set, as a drag-and-drop list does.
        """
        collection = self._find_collection(collection_id)
        if collection is None:
            return
        by_id = {r.id: r for r in collection.requests}
        reordered: list[HttpRequest] = []
        seen: set[str] = set()
        for request_id in ordered_ids:
            if request_id in by_id and request_id not in seen:
                reordered.append(by_id[request_id])
                seen.add(request_id)
        collection.requests = reordered
        collection.updated_at = now_ms()
        self._commit(MutationKind.COLLECTION_UPDATED, collection_id)

    def save_tab_to_collection(
        self,
        tab_id: str,
        collection_id: str | None = None,
        name: str | None = None,
    ) -> HttpRequest:
        """Save a tab's request, either in place or as a new collection entry.

        Without ``collection_id`` the tab must have an origin, and the saved
        entry is updated in place.  With ``collection_id`` a new entry is
        always created and becomes the tab's origin.  Raises
        ValidationFailure when neither applies, when the origin entry no
        longer exists, or when the name is blank.
        """
        tab = self._find_tab(tab_id)
        if tab is None:
            raise ValidationFailure("The tab no longer exists")

        if collection_id is None:
            if tab.origin is None:
                raise ValidationFailure("Select a collection to save the request to")
            return self._save_in_place(tab, tab.origin)

        request_name = (name if name is not None else tab.request.name).strip()
        if not request_name:
            raise ValidationFailure("Request name cannot be blank")
        copy = self.add_request_to_collection(
            collection_id, tab.request.model_copy(update={"name": request_name})
        )
        tab = self._find_tab(tab_id)
        if tab is None:
            raise StoreError(f"Tab {tab_id} was closed while saving the request")
        tab.request = tab.request.model_copy(update={"name": request_name})
        tab.title = request_name
        tab.origin = OriginRef(collection_id=collection_id, request_id=copy.id)
        self._commit(MutationKind.TAB_UPDATED, tab_id)
        return copy

    def _save_in_place(self, tab: Tab, origin: OriginRef) -> HttpRequest:
        collection = self._find_collection(origin.collection_id)
        if collection is None or all(r.id != origin.request_id for r in collection.requests):
            raise ValidationFailure("The saved request no longer exists; add it to a collection")
        fields = {name: getattr(tab.request, name) for name in _SAVED_FIELDS}
        self.update_request_in_collection(origin.collection_id, origin.request_id, fields)
        saved = self._find_collection(origin.collection_id)
        if saved is None:
            raise StoreError(f"Collection {origin.collection_id} vanished while saving")
        return next(r for r in saved.requests if r.id == origin.request_id).model_copy(deep=True)

    def export_collections(self) -> str:
        return export_collections(self._state.collections)

    def import_collections(self, text: str) -> ImportResult:
        """Append the collections of an export document.

        Nothing changes when the document is invalid; the result says why.
        """
        try:
            imported = parse_collections(text)
        except ImportFailure as exc:
            logger.info("Collection import rejected: %s", exc)
            return ImportResult(success=False, message=str(exc))
        self._state.collections.extend(imported)
        self._commit(MutationKind.COLLECTIONS_IMPORTED)
        return ImportResult(
            success=True,
            message=f"Imported {len(imported)} collection(s)",
            count=len(imported),
        )

    # ------------------------------------------------------------------
    # Environments
    # ------------------------------------------------------------------

    def add_environment(self, name: str, variables: Mapping[str, str] | None = None) -> Environment:
        """Create an environment.  Names must be unique (exact match)."""
        self._check_environment_name(name, exclude_id=None)
        environment = Environment(name=name, variables=dict(variables or {}))
        self._state.environments.append(environment)
        self._commit(MutationKind.ENVIRONMENT_ADDED, environment.id)
        return environment.model_copy(deep=True)

    def update_environment(
        self,
        environment_id: str,
        name: str | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> None:
        environment = self._find_environment(environment_id)
        if environment is None:
            return
        if name is not None:
            self._check_environment_name(name, exclude_id=environment_id)
            environment.name = name
        if variables is not None:
            environment.variables = dict(variables)
        self._commit(MutationKind.ENVIRONMENT_UPDATED, environment_id)

    def remove_environment(self, environment_id: str) -> None:
        """Delete an environment and drop it from the activation list."""
        if self._find_environment(environment_id) is None:
            return
        self._state.environments = [e for e in self._state.environments if e.id != environment_id]
        self._state.active_environment_ids = [
            env_id for env_id in self._state.active_environment_ids if env_id != environment_id
        ]
        self._commit(MutationKind.ENVIRONMENT_REMOVED, environment_id)

    def activate_environment(self, environment_id: str) -> None:
        """Append to the activation list.  Already active or unknown ids are ignored."""
        if environment_id in self._state.active_environment_ids:
            return
        if self._find_environment(environment_id) is None:
            return
        self._state.active_environment_ids.append(environment_id)
        self._commit(MutationKind.ENVIRONMENT_ACTIVATED, environment_id)

    def deactivate_environment(self, environment_id: str) -> None:
        if environment_id not in self._state.active_environment_ids:
            return
        self._state.active_environment_ids = [
            env_id for env_id in self._state.active_environment_ids if env_id != environment_id
        ]
        self._commit(MutationKind.ENVIRONMENT_DEACTIVATED, environment_id)

    def _check_environment_name(self, name: str, exclude_id: str | None) -> None:
        if not name.strip():
            raise ValidationFailure("Environment name cannot be blank")
        for environment in self._state.environments:
            if environment.id != exclude_id and environment.name == name:
                raise ValidationFailure(f"An environment named '{name}' already exists")

    # ------------------------------------------------------------------
    # History and settings
    # ------------------------------------------------------------------

    def remove_history_item(self, index: int) -> None:
        if not 0 <= index < len(self._state.history):
            return
        del self._state.history[index]
        self._commit(MutationKind.HISTORY_REMOVED, str(index))

    def clear_history(self) -> None:
        self._state.history = []
        self._commit(MutationKind.HISTORY_CLEARED)

    def set_max_history_items(self, limit: int) -> None:
        """Change the history cap; existing history is truncated to fit."""
        if limit < 0:
            raise ValidationFailure("The history limit cannot be negative")
        self._state.settings.max_history_items = limit
        self._state.history = self._state.history[:limit]
        self._commit(MutationKind.SETTINGS_UPDATED)

    # ------------------------------------------------------------------
    # Lookups on live objects
    # ------------------------------------------------------------------

    def _find_tab(self, tab_id: str) -> Tab | None:
        return next((t for t in self._state.tabs if t.id == tab_id), None)

    def _find_collection(self, collection_id: str) -> Collection | None:
        return next((c for c in self._state.collections if c.id == collection_id), None)

    def _find_environment(self, environment_id: str) -> Environment | None:
        return next((e for e in self._state.environments if e.id == environment_id), None)


def _coerce(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Normalise loosely typed request fields passed by callers."""
    unknown = set(changes) - set(HttpRequest.model_fields)
    if unknown:
        raise ValueError(f"unknown request fields: {sorted(unknown)}")
    coerced = dict(changes)
    for key in ("headers", "params"):
        if key in coerced:
            coerced[key] = [(str(k), str(v)) for k, v in coerced[key] or []]
    if coerced.get("body") is None and "body" in coerced:
        coerced["body"] = ""
    if "body_type" in coerced:
        coerced["body_type"] = BodyType(coerced["body_type"] or BodyType.JSON)
    if coerced.get("form_data") is not None:
        coerced["form_data"] = [
            f if isinstance(f, FormField) else FormField.model_validate(f)
            for f in coerced["form_data"]
        ]
    if "method" in coerced:
        coerced["method"] = str(coerced["method"]).upper()
    return coerced


def _as_response(value: Any) -> HttpResponse | None:
    if value is None or isinstance(value, HttpResponse):
        return value
    return HttpResponse.model_validate(value)


def _with_query_detached(request: HttpRequest) -> HttpRequest:
    if "?" not in request.url:
        return request
    base, query = detach_query(request.url)
    return request.model_copy(update={"url": base, "params": list(request.params) + query})


def _without_response(request: HttpRequest) -> HttpRequest:
    return request.model_copy(deep=True, update={"response": None})


def _error_payload(exc: Exception, url: str) -> HttpResponse:
    message = str(exc) or type(exc).__name__
    return HttpResponse(
        status=0,
        status_text=NETWORK_ERROR_STATUS_TEXT,
        body=message,
        size=0,
        duration=0,
        url=url,
    )
