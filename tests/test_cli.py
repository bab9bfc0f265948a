"""Tests for the typer command-line front-end."""

import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from repost.cli import app
from repost.persistence import decode_snapshot
from repost.transports import HttpxTransport

runner = CliRunner()


class _Server:
    """Stands in for the network: records requests, answers or refuses them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.down = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text="hello from server", headers={"X-Server": "mock"})


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    """Point the config and the state file into tmp_path."""
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(json.dumps({"state_path": str(tmp_path / "state.json")}))
    monkeypatch.setattr("repost.config.CONFIG_PATH", cfg_path)
    monkeypatch.setattr("repost.config._README_PATH", tmp_path / "README.md")
    return tmp_path


@pytest.fixture
def server(monkeypatch) -> _Server:
    mock = _Server()

    def transport(**kwargs) -> HttpxTransport:
        return HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(mock)))

    monkeypatch.setattr("repost.cli.HttpxTransport", transport)
    return mock


def _invoke(*args: str):
    return runner.invoke(app, list(args))


def _saved_state(workspace: Path):
    return decode_snapshot((workspace / "state.json").read_text())


class TestEnvCommands:
    def test_add_and_list(self, workspace: Path):
        """
        Given an empty state
        When an environment is added with variables and listed
        Then it shows with its variable count and is persisted
        """
        added = _invoke("env", "add", "dev", "host=api.test", "token=abc")
        listed = _invoke("env", "list")

        assert added.exit_code == 0, added.output
        assert "Added environment dev" in added.output
        assert "dev" in listed.output
        assert _saved_state(workspace).environments[0].variables == {
            "host": "api.test",
            "token": "abc",
        }

    def test_duplicate_name_fails(self, workspace: Path):
        """
        Given an environment named dev
        When another dev is added
        Then the command exits with 1 and explains why
        """
        _invoke("env", "add", "dev")

        result = _invoke("env", "add", "dev")

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_malformed_pair_fails(self, workspace: Path):
        """
        Given a variable argument without '='
        When env add is run
        Then the command exits with 1
        """
        result = _invoke("env", "add", "dev", "host")

        assert result.exit_code == 1
        assert "key=value" in result.output

    def test_set_merges_variables(self, workspace: Path):
        """
        Given an environment with one variable
        When env set adds another and overrides the first
        Then both are stored
        """
        _invoke("env", "add", "dev", "a=1")

        _invoke("env", "set", "dev", "a=2", "b=3")

        assert _saved_state(workspace).environments[0].variables == {"a": "2", "b": "3"}

    def test_activate_and_deactivate(self, workspace: Path):
        """
        Given two environments
        When both are activated and the first deactivated
        Then only the second remains in the activation list
        """
        _invoke("env", "add", "base")
        _invoke("env", "add", "local")
        _invoke("env", "activate", "base")
        _invoke("env", "activate", "local")

        _invoke("env", "deactivate", "base")

        state = _saved_state(workspace)
        local = next(e for e in state.environments if e.name == "local")
        assert state.active_environment_ids == [local.id]

    def test_unknown_environment_fails(self, workspace: Path):
        """
        Given no environments
        When one is activated by name
        Then the command exits with 1
        """
        result = _invoke("env", "activate", "ghost")

        assert result.exit_code == 1
        assert "No environment named 'ghost'" in result.output


class TestPreview:
    def test_substitutes_and_reports_missing(self, workspace: Path):
        """
        Given an active environment defining host
        When a text using host and path is previewed
        Then host is substituted and path is reported as undefined
        """
        _invoke("env", "add", "dev", "host=api.test")
        _invoke("env", "activate", "dev")

        result = _invoke("preview", "https://{{host}}/{{path}}")

        assert result.exit_code == 0
        assert "https://api.test/{{path}}" in result.output
        assert "Undefined: path" in result.output


class TestSend:
    def test_sends_with_temporary_environment(self, workspace: Path, server: _Server):
        """
        Given an inactive environment
        When a templated request is sent with -e
        Then the resolved request reaches the server and the env stays inactive
        """
        _invoke("env", "add", "dev", "host=api.test", "token=abc")

        result = _invoke(
            "send",
            "get",
            "https://{{host}}/users?sort=name",
            "-p",
            "page=2",
            "-H",
            "Authorization: Bearer {{token}}",
            "-e",
            "dev",
        )

        assert result.exit_code == 0, result.output
        assert "200 OK" in result.output
        assert "hello from server" in result.output
        request = server.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "https://api.test/users?page=2&sort=name"
        assert request.headers["authorization"] == "Bearer abc"
        state = _saved_state(workspace)
        assert state.active_environment_ids == []
        assert state.tabs == []
        assert state.history[0].response.status == 200

    def test_post_body_gets_content_type(self, workspace: Path, server: _Server):
        """
        Given a JSON body
        When it is posted
        Then the server receives it with application/json
        """
        result = _invoke("send", "POST", "https://api.test/items", "-d", '{"name": "x"}')

        assert result.exit_code == 0, result.output
        request = server.requests[0]
        assert request.content == b'{"name": "x"}'
        assert request.headers["content-type"] == "application/json"

    def test_network_error_exits_with_1(self, workspace: Path, server: _Server):
        """
        Given a server that refuses connections
        When a request is sent
        Then the command exits with 1, reports a network error and records no history
        """
        server.down = True

        result = _invoke("send", "GET", "https://down.test/")

        assert result.exit_code == 1
        assert "Network Error" in result.output
        assert _saved_state(workspace).history == []

    def test_unsupported_method_fails(self, workspace: Path, server: _Server):
        """
        Given an unknown HTTP method
        When send is run
        Then it exits with 1 before contacting the server
        """
        result = _invoke("send", "FETCH", "https://api.test/")

        assert result.exit_code == 1
        assert server.requests == []

    def test_save_to_collection(self, workspace: Path, server: _Server):
        """
        Given a collection
        When a request is sent with --save-to and --name
        Then the collection holds it under that name, without the response
        """
        _invoke("collection", "add", "API")

        result = _invoke(
            "send", "GET", "https://api.test/health", "--save-to", "API", "--name", "Health"
        )

        assert result.exit_code == 0, result.output
        saved = _saved_state(workspace).collections[0].requests
        assert [r.name for r in saved] == ["Health"]
        assert saved[0].response is None
        shown = _invoke("collection", "show", "API")
        assert "Health" in shown.output


class TestCollectionCommands:
    def test_export_and_import(self, workspace: Path):
        """
        Given a collection exported to a file
        When the file is imported
        Then a second collection with a new id exists
        """
        _invoke("collection", "add", "API", "--description", "demo")
        export_path = workspace / "out" / "collections.json"

        exported = _invoke("collection", "export", "-o", str(export_path))
        imported = _invoke("collection", "import", str(export_path))

        assert exported.exit_code == 0
        assert imported.exit_code == 0, imported.output
        assert "Imported 1 collection(s)" in imported.output
        collections = _saved_state(workspace).collections
        assert [c.name for c in collections] == ["API", "API"]
        assert collections[0].id != collections[1].id

    def test_import_invalid_document_fails(self, workspace: Path):
        """
        Given a file without a collections array
        When it is imported
        Then the command exits with 1 and nothing is added
        """
        path = workspace / "bad.json"
        path.write_text(json.dumps({"version": "1.0.0"}))

        result = _invoke("collection", "import", str(path))

        assert result.exit_code == 1
        assert "collections" in result.output

    def test_remove(self, workspace: Path):
        """
        Given a collection
        When it is removed by name
        Then the state has no collections
        """
        _invoke("collection", "add", "API")

        result = _invoke("collection", "remove", "API")

        assert result.exit_code == 0
        assert _saved_state(workspace).collections == []

    def test_show_lists_saved_requests(self, workspace: Path, server: _Server):
        """
        Given a request saved into a collection
        When the collection is shown by name
        Then its requests are listed
        """
        _invoke("collection", "add", "API")
        _invoke("send", "GET", "https://api.test/health", "--save-to", "API", "--name", "Health")

        result = _invoke("collection", "show", "API")

        assert result.exit_code == 0
        assert "Health" in result.output
        assert "https://api.test/health" in result.output

    def test_show_unknown_collection_fails(self, workspace: Path):
        """
        Given no collection with the requested name
        When it is shown
        Then the command exits with 1 and names the missing collection
        """
        result = _invoke("collection", "show", "Nope")

        assert result.exit_code == 1
        assert "No collection named 'Nope'" in result.output


class TestHeadersCommand:
    def test_lists_catalogue_by_category(self, workspace: Path):
        """
        Given no query
        When the headers command runs
        Then the whole catalogue is shown
        """
        result = _invoke("headers")

        assert result.exit_code == 0
        assert "Content-Type" in result.output
        assert "Authorization" in result.output

    def test_query_filters_headers(self, workspace: Path):
        """
        Given a query matching one header name
        When the headers command runs
        Then the matching header is shown and unrelated ones are not
        """
        result = _invoke("headers", "user-agent")

        assert result.exit_code == 0
        assert "User-Agent" in result.output
        assert "Authorization" not in result.output

    def test_query_without_matches_fails(self, workspace: Path):
        """
        Given a query that matches nothing
        When the headers command runs
        Then the command exits with 1
        """
        result = _invoke("headers", "zzzz-no-such-header")

        assert result.exit_code == 1
        assert "No headers match" in result.output


class TestHistoryCommands:
    def test_list_show_and_clear(self, workspace: Path, server: _Server):
        """
        Given two sent requests
        When history is listed, shown and cleared
        Then entries appear newest first and clearing empties the history
        """
        _invoke("send", "GET", "https://api.test/first")
        _invoke("send", "DELETE", "https://api.test/second")

        listed = _invoke("history", "list")
        shown = _invoke("history", "show", "0")
        cleared = _invoke("history", "clear")

        assert "DELETE" in listed.output
        assert "DELETE https://api.test/second" in shown.output
        assert cleared.exit_code == 0
        assert _saved_state(workspace).history == []

    def test_remove_out_of_range_fails(self, workspace: Path):
        """
        Given an empty history
        When entry 0 is removed
        Then the command exits with 1
        """
        result = _invoke("history", "remove", "0")

        assert result.exit_code == 1
        assert "No history entry" in result.output


class TestConfigErrors:
    def test_malformed_config_exits_with_1(self, tmp_path: Path, monkeypatch):
        """
        Given a config file that is not valid JSON
        When any command runs
        Then it exits with 1 and reports the config error
        """
        cfg_path = tmp_path / "config.json"
        cfg_path.write_text("{nope")
        monkeypatch.setattr("repost.config.CONFIG_PATH", cfg_path)

        result = _invoke("env", "list")

        assert result.exit_code == 1
        assert "Config error" in result.output

    def test_history_limit_from_config_is_applied(self, workspace: Path, server: _Server):
        """
        Given max_history_items set to 1 in the config file
        When two requests are sent
        Then only the newest is kept
        """
        cfg_path = workspace / "config.json"
        cfg = json.loads(cfg_path.read_text())
        cfg_path.write_text(json.dumps({**cfg, "max_history_items": 1}))

        _invoke("send", "GET", "https://api.test/one")
        _invoke("send", "GET", "https://api.test/two")

        history = _saved_state(workspace).history
        assert [h.url for h in history] == ["https://api.test/two"]
