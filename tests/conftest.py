"""
Shared pytest fixtures — in‑memory SQLite, FastAPI TestClient, and a fake
upstream (AI gateway, OAuth token endpoint, Drive, Sheets) behind
``httpx.MockTransport``.
"""
import json
import os
import re
import tempfile
import uuid
from urllib.parse import parse_qs

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="snapreceipts-"))

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.config import settings  # noqa: E402
from app.database import Base, get_db, get_session_factory  # noqa: E402
from app.http import get_http_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.storage import LocalObjectStorage, get_storage  # noqa: E402

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)

VALID_TOKEN = "valid-token"
REFRESH_TOKEN = "refresh-token"
FRESH_TOKEN = "fresh-token"


def ai_reply(payload) -> dict:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeUpstream:
    """Stateful stand-in for every service the backend talks to."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.valid_tokens = {VALID_TOKEN}
        self.refresh_ok = True
        self.token_refreshes = 0
        # AI gateway
        self.ai_payload = ai_reply(
            {"merchant_name": "Shell", "amount": 54.20, "date": "2025-11-28", "category": "Fuel"}
        )
        self.ai_status = 200
        self.ai_calls = 0
        # Drive
        self.folders: dict[str, str] = {}
        self.files: dict[str, dict] = {}
        # Sheets
        self.spreadsheets: dict[str, list[dict]] = {}
        self.formats: list[dict] = []
        self.sheets_disabled = False
        self.broken_tabs: set[str] = set()

    # ---------- helpers ----------
    def add_spreadsheet(self, spreadsheet_id: str, titles=()) -> None:
        self.spreadsheets[spreadsheet_id] = []
        for title in titles:
            self._add_tab(spreadsheet_id, title, None)

    def _add_tab(self, spreadsheet_id: str, title: str, index) -> dict:
        tabs = self.spreadsheets[spreadsheet_id]
        sheet_id = 1000 + sum(len(t) for t in self.spreadsheets.values())
        tab = {"sheetId": sheet_id, "title": title, "values": []}
        tabs.insert(len(tabs) if index is None else index, tab)
        return tab

    def tab(self, spreadsheet_id: str, title: str) -> dict:
        return next(t for t in self.spreadsheets[spreadsheet_id] if t["title"] == title)

    def titles(self, spreadsheet_id: str) -> list[str]:
        return [t["title"] for t in self.spreadsheets[spreadsheet_id]]

    def google_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host.endswith("googleapis.com")]

    @staticmethod
    def _tab_title(range_: str) -> str:
        m = re.match(r"^'((?:[^']|'')*)'", range_)
        return m.group(1).replace("''", "'") if m else range_.split("!")[0]

    # ---------- transport ----------
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "oauth2.googleapis.com":
            return self._token(request)
        if request.url.path.endswith("/chat/completions"):
            self.ai_calls += 1
            if self.ai_status != 200:
                return httpx.Response(self.ai_status, text="gateway error")
            return httpx.Response(200, json=self.ai_payload)
        if host.endswith("googleapis.com"):
            auth = request.headers.get("authorization", "")
            if auth.removeprefix("Bearer ") not in self.valid_tokens:
                return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}})
            if host == "sheets.googleapis.com":
                return self._sheets(request, path)
            return self._drive(request, path)
        # Any other HTTPS URL is an image download
        return httpx.Response(200, content=b"\xff\xd8remote-image", headers={"content-type": "image/jpeg"})

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        self.token_refreshes += 1
        if not self.refresh_ok or form.get("refresh_token") != [REFRESH_TOKEN]:
            return httpx.Response(400, json={"error": "invalid_grant"})
        self.valid_tokens.add(FRESH_TOKEN)
        return httpx.Response(200, json={"access_token": FRESH_TOKEN, "expires_in": 3599})

    def _drive(self, request: httpx.Request, path: str) -> httpx.Response:
        if path == "/drive/v3/files" and request.method == "GET":
            q = request.url.params.get("q", "")
            name = re.search(r"name='((?:[^'\\]|\\.)*)'", q).group(1).replace("\\'", "'")
            found = [{"id": fid, "name": n} for fid, n in self.folders.items() if n == name]
            return httpx.Response(200, json={"files": found})
        if path == "/drive/v3/files" and request.method == "POST":
            body = json.loads(request.content)
            fid = f"folder-{len(self.folders) + 1}"
            self.folders[fid] = body["name"]
            return httpx.Response(200, json={"id": fid, "name": body["name"]})
        if path == "/upload/drive/v3/files":
            raw = request.content
            meta = json.loads(re.search(rb"\r\n\r\n(\{.*?\})\r\n", raw, re.S).group(1))
            fid = f"file-{len(self.files) + 1}"
            self.files[fid] = {"name": meta["name"], "parents": meta["parents"], "body": raw}
            return httpx.Response(200, json={"id": fid})
        return httpx.Response(404, json={"error": {"message": "not found"}})

    def _sheets(self, request: httpx.Request, path: str) -> httpx.Response:
        if self.sheets_disabled:
            return httpx.Response(
                403,
                json={
                    "error": {
                        "code": 403,
                        "status": "PERMISSION_DENIED",
                        "message": "Google Sheets API has not been used in project 123 before or it is "
                        "disabled. Enable it by visiting https://console.developers.google.com/apis/api/"
                        "sheets.googleapis.com/overview?project=123 then retry.",
                        "details": [{"reason": "SERVICE_DISABLED"}],
                    }
                },
            )

        rest = path[len("/v4/spreadsheets"):].lstrip("/")
        if not rest and request.method == "POST":
            body = json.loads(request.content)
            sid = f"sheet-{len(self.spreadsheets) + 1}"
            self.add_spreadsheet(sid, [s["properties"]["title"] for s in body.get("sheets", [])])
            tabs = self.spreadsheets[sid]
            return httpx.Response(
                200,
                json={
                    "spreadsheetId": sid,
                    "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{sid}/edit",
                    "sheets": [{"properties": {"sheetId": t["sheetId"], "title": t["title"], "index": i}} for i, t in enumerate(tabs)],
                },
            )

        if rest.endswith(":batchUpdate"):
            sid = rest[: -len(":batchUpdate")]
            replies = []
            for req in json.loads(request.content)["requests"]:
                if "addSheet" in req:
                    props = req["addSheet"]["properties"]
                    tab = self._add_tab(sid, props["title"], props.get("index"))
                    idx = self.spreadsheets[sid].index(tab)
                    replies.append({"addSheet": {"properties": {"sheetId": tab["sheetId"], "title": tab["title"], "index": idx}}})
                else:
                    self.formats.append(req)
                    replies.append({})
            return httpx.Response(200, json={"spreadsheetId": sid, "replies": replies})

        sid, _, values_part = rest.partition("/values/")
        if sid not in self.spreadsheets:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Requested entity was not found."}})
        if not values_part:
            tabs = self.spreadsheets[sid]
            return httpx.Response(
                200,
                json={"sheets": [{"properties": {"sheetId": t["sheetId"], "title": t["title"], "index": i}} for i, t in enumerate(tabs)]},
            )

        append = values_part.endswith(":append")
        range_ = values_part[: -len(":append")] if append else values_part
        tab = self.tab(sid, self._tab_title(range_))
        if tab["title"] in self.broken_tabs:
            return httpx.Response(500, json={"error": {"code": 500, "message": "Internal error encountered."}})
        if request.method == "GET":
            return httpx.Response(200, json={"range": range_, "values": tab["values"]})
        rows = json.loads(request.content)["values"]
        if append:
            tab["values"].extend(rows)
        else:
            tab["values"][: len(rows)] = rows
        return httpx.Response(200, json={"updates": {"updatedRows": len(rows)}})


@pytest.fixture(autouse=True)
def _reset_tables(monkeypatch):
    monkeypatch.setattr(settings, "LLM_API_KEY", "test-llm-key")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "client-secret")
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def upstream():
    return FakeUpstream()


@pytest.fixture()
def http(upstream):
    with httpx.Client(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture()
def storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "storage"), "receipts", "https://files.test")


@pytest.fixture()
def user_id():
    return str(uuid.uuid4())


@pytest.fixture()
def auth_headers(user_id):
    token = jwt.encode({"sub": user_id, "role": "authenticated"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client(upstream, storage):
    def _override():
        session = _Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_session_factory] = lambda: _Session
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_http_factory] = lambda: (
        lambda: httpx.Client(transport=httpx.MockTransport(upstream.handler))
    )
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def google_profile(db, user_id, upstream):
    """A user who has connected Google and configured a spreadsheet."""
    from app.models import ProfileModel

    upstream.add_spreadsheet("sheet-main", ["Getting Started"])
    profile = ProfileModel(
        user_id=user_id,
        google_provider_token=VALID_TOKEN,
        google_refresh_token=REFRESH_TOKEN,
        google_sheets_id="sheet-main",
        google_drive_folder="SnapDaddy Receipts",
        google_connection_pending=False,
    )
    db.add(profile)
    db.commit()
    return profile
