"""Command-line front-end: send requests and manage the saved state.

Every command loads the snapshot from ``Settings.state_path``, applies its
change through ``AppStateStore`` and waits for the auto-saver before exiting.
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import NoReturn, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from repost.config import ConfigError, Settings, load_config
from repost.constants import HTTP_METHODS
from repost.domain.headers import headers_by_category, search_headers
from repost.domain.urls import display_url
from repost.domain.variables import missing_variables, substitute
from repost.logs import configure_logging
from repost.models import BodyType, Collection, Environment, HttpRequest, HttpResponse
from repost.persistence import JsonFileGateway
from repost.store import AppStateStore, ValidationFailure
from repost.transports import HttpxTransport

T = TypeVar("T")

app = typer.Typer(
    help="Compose and send HTTP requests with reusable environments", no_args_is_help=True
)
env_app = typer.Typer(help="Manage environments and their activation order", no_args_is_help=True)
collection_app = typer.Typer(help="Manage saved request collections", no_args_is_help=True)
history_app = typer.Typer(help="Inspect executed requests", no_args_is_help=True)
app.add_typer(env_app, name="env")
app.add_typer(collection_app, name="collection")
app.add_typer(history_app, name="history")

console = Console()

_HEADER_HELP = "Request header as 'Name: value'. Repeatable."
_PARAM_HELP = "Query parameter as 'key=value'. Repeatable."
_ENV_HELP = "Environment to activate for this request only. Repeatable; later wins."


def _settings() -> Settings:
    try:
        settings = load_config()
    except ConfigError as exc:
        _fail(f"Config error: {exc}")
    configure_logging(settings.log_level)
    return settings


def _run(action: Callable[[AppStateStore], Awaitable[T]]) -> T:
    """Open the saved state, run action against it and persist the result."""
    settings = _settings()

    async def session() -> T:
        transport = HttpxTransport(
            timeout=settings.timeout,
            follow_redirects=settings.follow_redirects,
            verify=settings.verify_tls,
        )
        store, saver = await AppStateStore.restore(JsonFileGateway(settings.state_path), transport)
        if store.max_history_items != settings.max_history_items:
            store.set_max_history_items(settings.max_history_items)
        try:
            return await action(store)
        finally:
            if saver is not None:
                await saver.flush()

    return asyncio.run(session())


def _fail(message: str) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


def _pair(text: str, separator: str) -> tuple[str, str]:
    key, sep, value = text.partition(separator)
    if not sep:
        _fail(f"Expected 'key{separator}value', got {text!r}")
    return key.strip(), value.strip()


def _environment(store: AppStateStore, name: str) -> Environment:
    environment = store.find_environment(name)
    if environment is None:
        _fail(f"No environment named {name!r}")
    return environment


def _collection(store: AppStateStore, name: str) -> Collection:
    for collection in store.collections:
        if collection.name == name:
            return collection
    _fail(f"No collection named {name!r}")


def _collection_id(store: AppStateStore, name: str) -> str:
    return _collection(store, name).id


def _print_response(response: HttpResponse, show_headers: bool) -> None:
    style = "green" if 200 <= response.status < 400 else "red"
    console.print(
        f"[bold {style}]{response.status} {response.status_text}[/]"
        f"  {response.duration} ms  {response.size} chars",
        highlight=False,
    )
    if show_headers and response.headers:
        table = Table("Header", "Value", show_edge=False)
        for key, value in response.headers.items():
            table.add_row(key, value)
        console.print(table)
    if response.body:
        console.print(response.body, markup=False, highlight=False, soft_wrap=True)


# ----------------------------------------------------------------------
# send
# ----------------------------------------------------------------------


@app.command()
def send(
    method: str = typer.Argument(..., help=f"One of {', '.join(HTTP_METHODS)}"),
    url: str = typer.Argument(..., help="URL, may contain {{variables}}"),
    header: list[str] = typer.Option([], "--header", "-H", help=_HEADER_HELP),  # noqa: B008
    param: list[str] = typer.Option([], "--param", "-p", help=_PARAM_HELP),  # noqa: B008
    data: str = typer.Option("", "--data", "-d", help="Request body"),
    body_type: BodyType = typer.Option(BodyType.JSON, "--body-type", "-t"),  # noqa: B008
    env: list[str] = typer.Option([], "--env", "-e", help=_ENV_HELP),  # noqa: B008
    save_to: str | None = typer.Option(
        None, "--save-to", help="Add the request to this collection"
    ),
    name: str | None = typer.Option(None, "--name", help="Name used with --save-to"),
    include: bool = typer.Option(False, "--include", "-i", help="Show response headers"),
) -> None:
    """Send a request and print the response."""
    if method.upper() not in HTTP_METHODS:
        _fail(f"Unsupported method {method!r}")

    headers = [_pair(h, ":") for h in header]
    params = [_pair(p, "=") for p in param]

    async def action(store: AppStateStore) -> int:
        extra = [_environment(store, n).id for n in env]
        target = _collection_id(store, save_to) if save_to is not None else None
        newly_active = [env_id for env_id in extra if env_id not in store.active_environment_ids]
        for env_id in newly_active:
            store.activate_environment(env_id)
        # A query string in url is appended after the explicit params.
        tab = store.add_tab(
            {
                "method": method.upper(),
                "url": url,
                "headers": headers,
                "params": params,
                "body": data,
                "body_type": body_type,
                **({"name": name} if name else {}),
            }
        )
        try:
            await store.send_request(tab.id)
            result = store.get_tab(tab.id)
            if result is None:
                _fail("The request tab was closed before the response arrived")
            if target is not None:
                try:
                    store.save_tab_to_collection(tab.id, target, name)
                except ValidationFailure as exc:
                    typer.echo(f"Not saved: {exc.reason}", err=True)
        finally:
            store.remove_tab(tab.id)
            for env_id in newly_active:
                store.deactivate_environment(env_id)

        if result.error is not None:
            typer.echo(f"{result.error.status_text}: {result.error.body}", err=True)
            return 1
        if result.response is None:
            _fail("No response received")
        _print_response(result.response, include)
        return 0

    code = _run(action)
    if code:
        raise typer.Exit(code=code)


@app.command()
def preview(text: str = typer.Argument(..., help="Text containing {{variables}}")) -> None:
    """Show text with the active environments substituted."""

    async def action(store: AppStateStore) -> None:
        variables = store.merged_variables
        console.print(substitute(text, variables), markup=False, highlight=False)
        missing = missing_variables(text, variables)
        if missing:
            typer.echo(f"Undefined: {', '.join(missing)}", err=True)

    _run(action)


@app.command()
def headers(
    query: str = typer.Argument("", help="Filter by name or description; blank lists all"),
) -> None:
    """Browse the catalogue of common request headers."""
    if query.strip():
        found = search_headers(query)
        if not found:
            _fail(f"No headers match {query!r}")
        table = Table("Name", "Description", "Category")
        for header in found:
            table.add_row(header.name, header.description, header.category)
        console.print(table)
        return

    for category, entries in headers_by_category().items():
        table = Table("Name", "Description", title=category)
        for header in entries:
            table.add_row(header.name, header.description)
        console.print(table)


# ----------------------------------------------------------------------
# env
# ----------------------------------------------------------------------


@env_app.command("list")
def env_list() -> None:
    """List environments; active ones show their activation position."""

    async def action(store: AppStateStore) -> None:
        order = {env_id: i for i, env_id in enumerate(store.active_environment_ids, start=1)}
        table = Table("Active", "Name", "Variables")
        for environment in store.environments:
            position = order.get(environment.id)
            table.add_row(
                str(position) if position else "",
                environment.name,
                str(len(environment.variables)),
            )
        console.print(table)

    _run(action)


@env_app.command("show")
def env_show(name: str) -> None:
    """Print an environment's variables."""

    async def action(store: AppStateStore) -> None:
        environment = _environment(store, name)
        table = Table("Key", "Value", title=environment.name)
        for key, value in environment.variables.items():
            table.add_row(key, value)
        console.print(table)

    _run(action)


@env_app.command("add")
def env_add(
    name: str,
    variables: list[str] = typer.Argument(None, help="key=value pairs"),  # noqa: B008
) -> None:
    """Create an environment."""
    pairs = dict(_pair(v, "=") for v in variables or [])

    async def action(store: AppStateStore) -> None:
        try:
            store.add_environment(name, pairs)
        except ValidationFailure as exc:
            _fail(exc.reason)
        typer.echo(f"Added environment {name}")

    _run(action)


@env_app.command("set")
def env_set(
    name: str,
    variables: list[str] = typer.Argument(..., help="key=value pairs"),  # noqa: B008
) -> None:
    """Add or change variables in an environment."""
    pairs = dict(_pair(v, "=") for v in variables)

    async def action(store: AppStateStore) -> None:
        environment = _environment(store, name)
        store.update_environment(environment.id, variables={**environment.variables, **pairs})
        typer.echo(f"Updated {len(pairs)} variable(s) in {name}")

    _run(action)


@env_app.command("rename")
def env_rename(name: str, new_name: str) -> None:
    async def action(store: AppStateStore) -> None:
        environment = _environment(store, name)
        try:
            store.update_environment(environment.id, name=new_name)
        except ValidationFailure as exc:
            _fail(exc.reason)
        typer.echo(f"Renamed {name} to {new_name}")

    _run(action)


@env_app.command("remove")
def env_remove(name: str) -> None:
    async def action(store: AppStateStore) -> None:
        store.remove_environment(_environment(store, name).id)
        typer.echo(f"Removed environment {name}")

    _run(action)


@env_app.command("activate")
def env_activate(name: str) -> None:
    """Activate an environment; it overrides environments activated before it."""

    async def action(store: AppStateStore) -> None:
        store.activate_environment(_environment(store, name).id)
        typer.echo(f"Activated {name}")

    _run(action)


@env_app.command("deactivate")
def env_deactivate(name: str) -> None:
    async def action(store: AppStateStore) -> None:
        store.deactivate_environment(_environment(store, name).id)
        typer.echo(f"Deactivated {name}")

    _run(action)


# ----------------------------------------------------------------------
# collection
# ----------------------------------------------------------------------


@collection_app.command("list")
def collection_list() -> None:
    async def action(store: AppStateStore) -> None:
        table = Table("Name", "Requests", "Description")
        for collection in store.collections:
            table.add_row(
                collection.name, str(len(collection.requests)), collection.description or ""
            )
        console.print(table)

    _run(action)


@collection_app.command("show")
def collection_show(name: str) -> None:
    """List the requests saved in a collection."""

    async def action(store: AppStateStore) -> None:
        collection = _collection(store, name)
        table = Table("#", "Name", "Method", "URL", title=collection.name)
        for i, request in enumerate(collection.requests, start=1):
            table.add_row(
                str(i), request.name, request.method, display_url(request.url, request.params)
            )
        console.print(table)

    _run(action)


@collection_app.command("add")
def collection_add(
    name: str,
    description: str | None = typer.Option(None, "--description", help="Free-text description"),
) -> None:
    async def action(store: AppStateStore) -> None:
        try:
            store.add_collection(name, description)
        except ValidationFailure as exc:
            _fail(exc.reason)
        typer.echo(f"Added collection {name}")

    _run(action)


@collection_app.command("remove")
def collection_remove(name: str) -> None:
    """Delete a collection and every request in it."""

    async def action(store: AppStateStore) -> None:
        store.remove_collection(_collection_id(store, name))
        typer.echo(f"Removed collection {name}")

    _run(action)


@collection_app.command("export")
def collection_export(
    output: Path | None = typer.Option(  # noqa: B008
        None, "--output", "-o", help="File to write; stdout if omitted"
    ),
) -> None:
    async def action(store: AppStateStore) -> str:
        return store.export_collections()

    document = _run(action)
    if output is None:
        typer.echo(document)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document)
    typer.echo(f"Exported collections to {output}")


@collection_app.command("import")
def collection_import(
    source: Path = typer.Argument(..., help="Exported JSON document"),  # noqa: B008
) -> None:
    try:
        text = source.read_text()
    except OSError as exc:
        _fail(f"Cannot read {source}: {exc}")

    async def action(store: AppStateStore) -> bool:
        result = store.import_collections(text)
        typer.echo(result.message, err=not result.success)
        return result.success

    if not _run(action):
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# history
# ----------------------------------------------------------------------


def _history_entry(store: AppStateStore, index: int) -> HttpRequest:
    history = store.history
    if not 0 <= index < len(history):
        _fail(f"No history entry at index {index}")
    return history[index]


@history_app.command("list")
def history_list(limit: int = typer.Option(20, "--limit", "-n", min=1)) -> None:
    """Most recent first."""

    async def action(store: AppStateStore) -> None:
        table = Table("#", "Method", "URL", "Status", "Time")
        for i, entry in enumerate(store.history[:limit]):
            response = entry.response
            table.add_row(
                str(i),
                entry.method,
                display_url(entry.url, entry.params),
                str(response.status) if response else "",
                f"{response.duration} ms" if response else "",
            )
        console.print(table)

    _run(action)


@history_app.command("show")
def history_show(
    index: int,
    include: bool = typer.Option(False, "--include", "-i", help="Show response headers"),
) -> None:
    async def action(store: AppStateStore) -> None:
        entry = _history_entry(store, index)
        console.print(f"{entry.method} {display_url(entry.url, entry.params)}", markup=False)
        if entry.response is not None:
            _print_response(entry.response, include)

    _run(action)


@history_app.command("remove")
def history_remove(index: int) -> None:
    async def action(store: AppStateStore) -> None:
        _history_entry(store, index)
        store.remove_history_item(index)
        typer.echo(f"Removed history entry {index}")

    _run(action)


@history_app.command("clear")
def history_clear() -> None:
    async def action(store: AppStateStore) -> None:
        store.clear_history()
        typer.echo("History cleared")

    _run(action)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
