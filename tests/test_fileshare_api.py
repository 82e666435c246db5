from datetime import datetime
from urllib.parse import quote

ENDPOINT = "/fileshare"


def _upload(client, name="hello.txt", data=b"hello world", **form):
    files = {"file": (name, data, "application/octet-stream")}
    return client.post(ENDPOINT, files=files, data=form or None)


# -------------------------
# UPLOAD
# -------------------------
def test_upload_returns_envelope(client):
    r = _upload(client, data=b"x" * 1234, action="upload")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    data = body["data"]
    assert set(data) == {"id", "filename", "downloadUrl", "expiresAt", "size"}
    assert len(data["id"]) == 12
    assert data["filename"] == "hello.txt"
    assert data["size"] == 1234
    assert data["downloadUrl"] == f"https://files.example.com/fileshare?id={data['id']}"
    assert data["expiresAt"] == "2025-01-03T12:00:00+00:00"


def test_upload_without_public_base_url_uses_request_url(tmp_path, clock):
    from fastapi.testclient import TestClient

    from fileshare.core.settings import Settings
    from fileshare.main import create_app

    settings = Settings(STORAGE_ROOT=tmp_path / "u", META_ROOT=tmp_path / "m", _env_file=None)
    with TestClient(create_app(settings, clock=clock)) as c:
        data = _upload(c).json()["data"]
    assert data["downloadUrl"] == f"http://testserver/fileshare?id={data['id']}"


def test_upload_rejects_wrong_action(client):
    r = _upload(client, action="delete")
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Invalid action"}


def test_upload_missing_file(client):
    r = client.post(ENDPOINT, data={"action": "upload"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Missing file payload"}


def test_upload_empty_file(client):
    r = _upload(client, data=b"")
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_upload_exactly_max_succeeds(client, settings):
    r = _upload(client, data=b"a" * settings.MAX_UPLOAD_BYTES)
    assert r.status_code == 200
    assert r.json()["data"]["size"] == settings.MAX_UPLOAD_BYTES


def test_upload_one_byte_over_max_is_413(client, settings):
    r = _upload(client, data=b"a" * (settings.MAX_UPLOAD_BYTES + 1))
    assert r.status_code == 413
    assert r.json() == {"success": False, "error": "File exceeds maximum allowed size"}
    assert [p for p in settings.STORAGE_ROOT.iterdir() if p.is_file()] == []
    assert list(settings.META_ROOT.iterdir()) == []


def _multipart(size: int, chunk: int = 64 * 1024):
    yield (
        b"--BOUNDARY\r\n"
        b'Content-Disposition: form-data; name="file"; filename="big.bin"\r\n'
        b"Content-Type: application/octet-stream\r\n\r\n"
    )
    sent = 0
    while sent < size:
        n = min(chunk, size - sent)
        yield b"a" * n
        sent += n
    yield b"\r\n--BOUNDARY--\r\n"


def test_oversized_content_length_rejected_before_body_is_read(client, settings):
    r = client.post(
        ENDPOINT,
        content=b"--BOUNDARY--\r\n",
        headers={
            "Content-Type": "multipart/form-data; boundary=BOUNDARY",
            "Content-Length": str(50 * 1024 ** 3),
        },
    )
    assert r.status_code == 413
    assert r.json() == {"success": False, "error": "File exceeds maximum allowed size"}
    assert list(settings.META_ROOT.iterdir()) == []


def test_oversized_chunked_body_is_cut_off(client, settings):
    r = client.post(
        ENDPOINT,
        content=_multipart(settings.MAX_UPLOAD_BYTES + 2 * settings.UPLOAD_OVERHEAD_BYTES),
        headers={"Content-Type": "multipart/form-data; boundary=BOUNDARY"},
    )
    assert r.status_code == 413
    assert r.json() == {"success": False, "error": "File exceeds maximum allowed size"}
    assert [p for p in settings.STORAGE_ROOT.iterdir() if p.is_file()] == []
    assert list(settings.META_ROOT.iterdir()) == []


# -------------------------
# INFO
# -------------------------
def test_info_after_upload(client):
    up = _upload(client, data=b"12345").json()["data"]
    r = client.get(ENDPOINT, params={"id": up["id"], "info": "1"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["size"] == 5
    assert data["isZip"] is False
    assert "zipContents" not in data
    assert "zipTruncated" not in data
    delta = datetime.fromisoformat(data["expiresAt"]) - datetime.fromisoformat(data["uploadedAt"])
    assert delta.total_seconds() == 48 * 3600


def test_info_flag_without_value(client):
    up = _upload(client).json()["data"]
    r = client.get(f"{ENDPOINT}?id={up['id']}&info")
    assert r.status_code == 200
    assert r.json()["data"]["id"] == up["id"]


def test_info_zip_preview_truncated(client, zip_factory):
    up = _upload(client, name="big.zip", data=zip_factory(500)).json()["data"]
    data = client.get(ENDPOINT, params={"id": up["id"], "info": "1"}).json()["data"]
    assert data["isZip"] is True
    assert len(data["zipContents"]) == 200
    assert data["zipTruncated"] is True
    assert data["zipContents"][0] == {"name": "folder/file_0000.txt", "size": 0}


def test_info_zip_preview_small(client, zip_factory):
    up = _upload(client, name="small.zip", data=zip_factory(50)).json()["data"]
    data = client.get(ENDPOINT, params={"id": up["id"], "info": "1"}).json()["data"]
    assert len(data["zipContents"]) == 50
    assert data["zipTruncated"] is False


def test_info_fake_zip_has_empty_preview(client):
    up = _upload(client, name="fake.zip", data=b"not a zip").json()["data"]
    r = client.get(ENDPOINT, params={"id": up["id"], "info": "1"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["isZip"] is True
    assert data["zipContents"] == []
    assert data["zipTruncated"] is False


def test_info_damaged_zip_header_has_empty_preview(client, broken_zip):
    up = _upload(client, name="broken.zip", data=broken_zip).json()["data"]
    r = client.get(ENDPOINT, params={"id": up["id"], "info": "1"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["isZip"] is True
    assert data["zipContents"] == []
    assert data["zipTruncated"] is False


def test_info_invalid_id(client):
    r = client.get(ENDPOINT, params={"id": "!!!", "info": "1"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Invalid file id"}


def test_info_unknown_id(client):
    r = client.get(ENDPOINT, params={"id": "0123456789ab", "info": "1"})
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "File not found"}


def test_info_expired_is_410_then_404(client, clock, settings):
    up = _upload(client).json()["data"]
    clock.advance(hours=48, seconds=1)

    r = client.get(ENDPOINT, params={"id": up["id"], "info": "1"})
    assert r.status_code == 410
    assert r.json() == {"success": False, "error": "Link expired"}
    assert not (settings.META_ROOT / f"{up['id']}.json").exists()

    r = client.get(ENDPOINT, params={"id": up["id"], "info": "1"})
    assert r.status_code == 404


def test_request_sweeps_other_expired_records(client, clock, settings):
    old = _upload(client, name="old.txt").json()["data"]
    clock.advance(hours=48, seconds=1)
    fresh = _upload(client, name="fresh.txt").json()["data"]

    assert not (settings.META_ROOT / f"{old['id']}.json").exists()
    assert (settings.META_ROOT / f"{fresh['id']}.json").exists()
    assert [p.name for p in settings.STORAGE_ROOT.iterdir() if p.is_file()] == [f"{fresh['id']}__fresh.txt"]


def test_expired_without_sweep_is_gone(tmp_path, clock):
    from fastapi.testclient import TestClient

    from fileshare.core.settings import Settings
    from fileshare.main import create_app

    settings = Settings(
        STORAGE_ROOT=tmp_path / "u",
        META_ROOT=tmp_path / "m",
        SWEEP_ON_REQUEST=False,
        _env_file=None,
    )
    with TestClient(create_app(settings, clock=clock)) as c:
        up = _upload(c).json()["data"]
        clock.advance(hours=48, seconds=1)

        r = c.get(ENDPOINT, params={"id": up["id"], "info": "1"})
        assert r.status_code == 410
        assert r.json() == {"success": False, "error": "Link expired"}

        r = c.get(ENDPOINT, params={"id": up["id"]})
        assert r.status_code == 404

    assert list((tmp_path / "m").iterdir()) == []
    assert [p for p in (tmp_path / "u").iterdir() if p.is_file()] == []


# -------------------------
# DOWNLOAD
# -------------------------
def test_download_roundtrip(client):
    payload = bytes(range(256)) * 50
    up = _upload(client, name="report 2024 (final).pdf", data=payload).json()["data"]

    r = client.get(ENDPOINT, params={"id": up["id"]})
    assert r.status_code == 200
    assert r.content == payload
    assert r.headers["content-length"] == str(len(payload))
    assert r.headers["content-type"] == "application/octet-stream"
    assert r.headers["x-fileshare-filename"] == "report 2024 (final).pdf"
    assert r.headers["content-disposition"].startswith('attachment; filename="report 2024 (final).pdf"')
    assert up["id"] not in r.headers["content-disposition"]


def test_download_non_latin_filename(client):
    name = "отчёт.txt"
    up = _upload(client, name=name, data=b"abc").json()["data"]
    r = client.get(ENDPOINT, params={"id": up["id"]})
    assert r.status_code == 200
    assert r.headers["x-fileshare-filename"] == quote(name, safe="")
    assert f"filename*=UTF-8''{quote(name, safe='')}" in r.headers["content-disposition"]


def test_download_errors_are_plain_text(client):
    r = client.get(ENDPOINT, params={"id": "---"})
    assert r.status_code == 400
    assert r.text == "Invalid download id"
    assert r.headers["content-type"].startswith("text/plain")

    r = client.get(ENDPOINT, params={"id": "0123456789ab"})
    assert r.status_code == 404
    assert r.text == "File not found"


def test_download_id_with_junk_is_stripped(client):
    up = _upload(client, data=b"abc").json()["data"]
    r = client.get(ENDPOINT, params={"id": f"{up['id']}/../"})
    assert r.status_code == 200
    assert r.content == b"abc"


# -------------------------
# PROTOCOL
# -------------------------
def test_get_without_id_is_unsupported(client):
    r = client.get(ENDPOINT)
    assert r.status_code == 405
    assert r.json() == {"success": False, "error": "Unsupported request"}


def test_other_methods_are_unsupported(client):
    r = client.put(ENDPOINT)
    assert r.status_code == 405
    assert r.json()["success"] is False


def test_plain_options_is_204(client):
    r = client.options(ENDPOINT)
    assert r.status_code == 204
    assert r.content == b""


def test_cors_preflight_is_204(client):
    r = client.options(
        ENDPOINT,
        headers={
            "Origin": "https://somewhere.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert r.status_code == 204
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert "POST" in r.headers["access-control-allow-methods"]


def test_cors_headers_on_download(client):
    up = _upload(client).json()["data"]
    r = client.get(ENDPOINT, params={"id": up["id"]}, headers={"Origin": "https://elsewhere.example"})
    assert r.headers["access-control-allow-origin"] == "*"
    assert "X-Fileshare-Filename" in r.headers["access-control-expose-headers"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
