"""
Tests for phone upload sessions — service layer and endpoints.
"""
from datetime import timedelta

import pytest

from app import sessions
from app.errors import NotFoundError, SessionAlreadyUsedError, SessionExpiredError
from app.models import ReceiptModel, UploadSessionModel
from app.sessions import consume_session, create_session
from app.timeutil import utcnow

JPEG = ("receipt.jpg", b"\xff\xd8\xff\xe0phone-photo", "image/jpeg")


def _stored_files(storage, user_id):
    user_dir = storage.bucket_dir / user_id
    return sorted(p.name for p in user_dir.iterdir()) if user_dir.exists() else []


class TestSessionService:
    def test_expiry_is_five_minutes(self, db, user_id):
        session = create_session(db, user_id)
        assert session.expires_at - session.created_at == timedelta(minutes=5)
        assert session.status == "pending"

    def test_ids_are_unique(self, db, user_id):
        ids = {create_session(db, user_id).session_id for _ in range(20)}
        assert len(ids) == 20

    def test_consume_once(self, db, storage, user_id):
        session = create_session(db, user_id)
        consumed = consume_session(db, storage, session.session_id, "a.jpg", b"one", "image/jpeg")
        assert consumed.status == "uploaded"
        assert consumed.file_url.startswith(f"https://files.test/storage/receipts/{user_id}/")

        with pytest.raises(SessionAlreadyUsedError):
            consume_session(db, storage, session.session_id, "b.jpg", b"two", "image/jpeg")
        assert len(_stored_files(storage, user_id)) == 1

    def test_expired_is_not_not_found(self, db, storage, user_id):
        session = create_session(db, user_id, now=utcnow() - timedelta(minutes=6))
        with pytest.raises(SessionExpiredError) as exc:
            consume_session(db, storage, session.session_id, "a.jpg", b"img", "image/jpeg")
        assert exc.value.status_code == 410
        assert _stored_files(storage, user_id) == []

    def test_expiry_boundary(self, db, storage, user_id):
        start = utcnow()
        session = create_session(db, user_id, now=start)
        with pytest.raises(SessionExpiredError):
            consume_session(
                db, storage, session.session_id, "a.jpg", b"img", "image/jpeg", now=start + timedelta(minutes=5)
            )

    def test_unknown_session(self, db, storage):
        with pytest.raises(NotFoundError):
            consume_session(db, storage, "no-such-session", "a.jpg", b"img", "image/jpeg")

    def test_lost_race_cleans_up(self, db, storage, user_id, monkeypatch):
        session = create_session(db, user_id)
        consume_session(db, storage, session.session_id, "first.jpg", b"one", "image/jpeg")

        # Second caller read the row before the first one committed
        monkeypatch.setattr(sessions, "_check_usable", lambda s, now: None)
        with pytest.raises(SessionAlreadyUsedError):
            consume_session(db, storage, session.session_id, "second.jpg", b"two", "image/jpeg")

        files = _stored_files(storage, user_id)
        assert len(files) == 1
        assert files[0].endswith("_first.jpg")


class TestSessionEndpoints:
    def _open(self, client, auth_headers):
        resp = client.post("/api/upload-sessions", headers=auth_headers)
        assert resp.status_code == 200
        return resp.json()

    def test_open_requires_auth(self, client):
        assert client.post("/api/upload-sessions").status_code == 401

    def test_open_and_poll(self, client, auth_headers):
        body = self._open(client, auth_headers)
        assert body["success"] is True
        assert body["expiresAt"].endswith("Z")

        status = client.get(f"/api/upload-sessions/{body['sessionId']}", headers=auth_headers).json()
        assert status["status"] == "pending"
        assert status["fileUrl"] is None

    def test_phone_upload_creates_one_receipt(self, client, db, auth_headers, upstream, storage, user_id):
        sid = self._open(client, auth_headers)["sessionId"]

        resp = client.post("/api/phone-upload", params={"sessionId": sid}, files={"file": JPEG})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Receipt uploaded and is being processed"
        assert body["fileUrl"].startswith(f"https://files.test/storage/receipts/{user_id}/")

        status = client.get(f"/api/upload-sessions/{sid}", headers=auth_headers).json()
        assert status["status"] == "uploaded"
        assert status["receiptId"]

        db.expire_all()
        receipt = db.get(ReceiptModel, status["receiptId"])
        assert receipt.user_id == user_id
        assert receipt.image_url == body["fileUrl"]
        assert receipt.category == "Fuel"
        assert upstream.ai_calls == 1

    def test_second_upload_conflicts(self, client, db, auth_headers, storage, user_id):
        sid = self._open(client, auth_headers)["sessionId"]
        assert client.post("/api/phone-upload", params={"sessionId": sid}, files={"file": JPEG}).status_code == 200

        resp = client.post("/api/phone-upload", params={"sessionId": sid}, files={"file": JPEG})
        assert resp.status_code == 409
        assert resp.json() == {"error": "Session has already been used"}
        assert db.query(ReceiptModel).count() == 1
        assert len(_stored_files(storage, user_id)) == 1

    def test_expired_upload(self, client, db, auth_headers, user_id):
        session = create_session(db, user_id, now=utcnow() - timedelta(minutes=10))

        resp = client.post("/api/phone-upload", params={"sessionId": session.session_id}, files={"file": JPEG})
        assert resp.status_code == 410
        assert resp.json() == {"error": "Session has expired"}

        status = client.get(f"/api/upload-sessions/{session.session_id}", headers=auth_headers).json()
        assert status["status"] == "expired"
        assert db.get(UploadSessionModel, session.session_id).status == "pending"

    def test_expired_checked_before_file_type(self, client, db, user_id, storage):
        session = create_session(db, user_id, now=utcnow() - timedelta(minutes=10))
        heic = ("IMG_0001.HEIC", b"\x00\x00\x00\x18ftypheic", "application/octet-stream")

        resp = client.post("/api/phone-upload", params={"sessionId": session.session_id}, files={"file": heic})
        assert resp.status_code == 410
        assert _stored_files(storage, user_id) == []

    def test_unknown_checked_before_file_type(self, client):
        resp = client.post(
            "/api/phone-upload", params={"sessionId": "nope"}, files={"file": ("notes.txt", b"hello", "text/plain")}
        )
        assert resp.status_code == 404

    def test_used_checked_before_file_type(self, client, auth_headers):
        sid = self._open(client, auth_headers)["sessionId"]
        assert client.post("/api/phone-upload", params={"sessionId": sid}, files={"file": JPEG}).status_code == 200

        resp = client.post(
            "/api/phone-upload", params={"sessionId": sid}, files={"file": ("notes.txt", b"hello", "text/plain")}
        )
        assert resp.status_code == 409

    def test_unknown_session(self, client):
        resp = client.post("/api/phone-upload", params={"sessionId": "nope"}, files={"file": JPEG})
        assert resp.status_code == 404

    def test_missing_session_id(self, client):
        resp = client.post("/api/phone-upload", files={"file": JPEG})
        assert resp.status_code == 400

    def test_non_image_rejected(self, client, auth_headers):
        sid = self._open(client, auth_headers)["sessionId"]
        resp = client.post(
            "/api/phone-upload", params={"sessionId": sid}, files={"file": ("notes.txt", b"hello", "text/plain")}
        )
        assert resp.status_code == 400

    def test_other_users_session_hidden(self, client, db, auth_headers):
        other = create_session(db, "00000000-0000-4000-8000-000000000000")
        resp = client.get(f"/api/upload-sessions/{other.session_id}", headers=auth_headers)
        assert resp.status_code == 404

    def test_ai_failure_keeps_upload(self, client, db, auth_headers, upstream):
        upstream.ai_status = 503
        sid = self._open(client, auth_headers)["sessionId"]

        resp = client.post("/api/phone-upload", params={"sessionId": sid}, files={"file": JPEG})
        assert resp.status_code == 200
        status = client.get(f"/api/upload-sessions/{sid}", headers=auth_headers).json()
        assert status["status"] == "uploaded"
        assert status["receiptId"] is None
        assert db.query(ReceiptModel).count() == 0
