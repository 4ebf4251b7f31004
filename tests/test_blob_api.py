from __future__ import annotations

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

import folio.api.server as srv
from folio.core.models import BlobFile, UploadResult
from folio.storage import set_blob_storage
from folio.storage.config import DEFAULT_MAX_UPLOAD_BYTES


def test_oversized_upload_never_reaches_storage(authed_client) -> None:
    storage = MagicMock()
    set_blob_storage(storage)

    payload = b"x" * (DEFAULT_MAX_UPLOAD_BYTES + 1)
    r = authed_client.post("/api/blob", files={"file": ("big.bin", payload, "application/octet-stream")})

    assert r.status_code == 400
    assert r.json()["error"] == "File too large"
    storage.upload.assert_not_called()


def test_upload_at_limit_is_accepted(authed_client) -> None:
    storage = MagicMock()
    storage.upload.return_value = UploadResult(url="https://cdn.example/me.png", pathname="me.png")
    set_blob_storage(storage)

    payload = b"x" * DEFAULT_MAX_UPLOAD_BYTES
    r = authed_client.post(
        "/api/blob",
        files={"file": ("photo.png", payload, "image/png")},
        data={"customFileName": "me.png"},
    )

    assert r.status_code == 200
    assert r.json() == {"url": "https://cdn.example/me.png", "pathname": "me.png"}
    args, kwargs = storage.upload.call_args
    assert args[1] == "me.png"
    assert kwargs["access"] == "public"
    assert kwargs["add_random_suffix"] is False
    assert kwargs["content_type"] == "image/png"


def test_upload_without_file_is_400(authed_client) -> None:
    r = authed_client.post("/api/blob", data={"customFileName": "x.png"})
    assert r.status_code == 400
    assert r.json() == {"error": "No file provided"}


def test_upload_requires_auth() -> None:
    storage = MagicMock()
    set_blob_storage(storage)
    r = TestClient(srv.app).post("/api/blob", files={"file": ("a.txt", b"a", "text/plain")})
    assert r.status_code == 401
    storage.upload.assert_not_called()


def test_local_upload_list_delete_round_trip(authed_client) -> None:
    r = authed_client.post(
        "/api/blob",
        files={"file": ("cv.pdf", b"%PDF-1.4", "application/pdf")},
        data={"addSuffix": "true"},
    )
    assert r.status_code == 200
    uploaded = r.json()
    assert uploaded["pathname"].startswith("cv-")
    assert uploaded["pathname"].endswith(".pdf")

    files = authed_client.get("/api/blob").json()["files"]
    assert [f["pathname"] for f in files] == [uploaded["pathname"]]
    assert files[0]["size"] == len(b"%PDF-1.4")
    assert files[0]["uploadedAt"].endswith("Z")

    # Local uploads are served publicly.
    served = TestClient(srv.app).get(uploaded["url"])
    assert served.status_code == 200
    assert served.content == b"%PDF-1.4"

    r = authed_client.request("DELETE", "/api/blob", json={"url": uploaded["url"]})
    assert r.json() == {"success": True}
    assert authed_client.get("/api/blob").json()["files"] == []


def test_delete_requires_url(authed_client) -> None:
    r = authed_client.request("DELETE", "/api/blob", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "No URL provided"}


def test_list_failure_is_reported(authed_client) -> None:
    storage = MagicMock()
    storage.list.side_effect = RuntimeError("s3 down")
    set_blob_storage(storage)
    r = authed_client.get("/api/blob")
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to list files"}


def test_list_serializes_camel_case(authed_client) -> None:
    storage = MagicMock()
    storage.list.return_value = [BlobFile(url="u", pathname="p", size=3, uploaded_at="2024-01-01T00:00:00.000Z")]
    set_blob_storage(storage)
    files = authed_client.get("/api/blob").json()["files"]
    assert files == [{"url": "u", "pathname": "p", "size": 3, "uploadedAt": "2024-01-01T00:00:00.000Z"}]
