"""
Shared fixtures: an offline LedgerService over a temp cache, and an in-memory
stand-in for the remote tabular service that speaks the same request shapes.
"""
import copy

import pytest
import requests

from coop_ledger import LedgerService

ADMIN = {"id": "admin", "role": "admin"}

ID_COLUMNS = {
    "Members": "member_id",
    "Transactions": "transaction_id",
    "Loans": "loan_id",
    "Logs": "log_id",
}


class FakeResponse:
    """Minimal requests.Response: status code plus a JSON body."""

    def __init__(self, payload=None, status_code=200, invalid_json=False):
        self.payload = payload
        self.status_code = status_code
        self.invalid_json = invalid_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if self.invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload


class FakeSession:
    """
    In-memory remote tabular service.

    Set `fail` to make every call raise a connection error, or queue
    `responses` to return canned FakeResponse objects before falling back to
    the in-memory tables.
    """

    def __init__(self):
        self.tables = {name: [] for name in ID_COLUMNS}
        self.calls = []
        self.responses = []
        self.fail = False
        self.closed = False

    def request(self, method, url, timeout=None, params=None, json=None):
        self.calls.append({
            "method": method, "url": url, "timeout": timeout,
            "params": params, "json": json,
        })
        if self.fail:
            raise requests.ConnectionError("Connection refused")
        if self.responses:
            return self.responses.pop(0)

        if method == "GET":
            rows = self.tables.setdefault(params["collection"], [])
            return FakeResponse({"status": "success", "data": copy.deepcopy(rows)})

        collection = json["collection"]
        rows = self.tables.setdefault(collection, [])
        id_column = ID_COLUMNS.get(collection, "id")
        if json["action"] == "create":
            rows.append(dict(json["data"]))
        elif json["action"] == "update":
            for row in rows:
                if str(row.get(id_column)) == str(json["id"]):
                    row.update(json["data"])
        elif json["action"] == "delete":
            self.tables[collection] = [r for r in rows if str(r.get(id_column)) != str(json["id"])]
        return FakeResponse({"status": "success"})

    def close(self):
        self.closed = True


@pytest.fixture
def cache_dir(tmp_path, monkeypatch):
    """Point the local cache at a fresh temp directory and ignore any operator config."""
    directory = tmp_path / "cache"
    monkeypatch.setenv("COOP_LEDGER_CACHE_DIR", str(directory))
    monkeypatch.delenv("COOP_LEDGER_CONFIG", raising=False)
    return directory


@pytest.fixture
def service(cache_dir):
    """Offline LedgerService backed only by the temp cache."""
    svc = LedgerService(offline=True)
    yield svc
    svc.close()


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def remote_config_file(tmp_path):
    """Operator config enabling the remote service at a dummy URL."""
    path = tmp_path / "ledger.yaml"
    path.write_text(
        "remote:\n"
        "  base_url: http://tabular.example/exec\n"
        "  timeout_ms: 2500\n"
    )
    return path


@pytest.fixture
def remote_service(cache_dir, remote_config_file, fake_session):
    """LedgerService talking to the in-memory remote service."""
    svc = LedgerService(config_uri=str(remote_config_file), session=fake_session)
    yield svc
    svc.close()


@pytest.fixture
def admin():
    return dict(ADMIN)


@pytest.fixture
def member(service, admin):
    """A registered member with no balances."""
    return service.add_member(admin, name="Siti Aminah", member_id="M-001")
