from click.testing import CliRunner

from drop_service.cli import cli

API_URL = "http://drop.test"

def _invoke(args, **kwargs):
    return CliRunner().invoke(cli, ["--api-url", API_URL, *args], **kwargs)

def test_send_text(httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{API_URL}/entries", json={"entry": {"id": "e1", "kind": "text", "text": "hello"}})

    result = _invoke(["send", "hello"])

    assert result.exit_code == 0
    assert "Saved text entry e1" in result.output

def test_send_blank_text_fails(httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=f"{API_URL}/entries",
        status_code=400,
        json={"error": "text required", "code": "validation_error"},
    )

    result = _invoke(["send", "   "])

    assert result.exit_code == 1
    assert "text required" in result.output

def test_list_shows_group_position(httpx_mock):
    httpx_mock.add_response(method="GET", url=f"{API_URL}/entries", json=[
        {"id": "e2", "kind": "file", "name": "a.txt", "storageKey": "uploads/a", "groupSize": 2, "createdAt": "2026-10-19T12:00:01"},
        {"id": "e2", "kind": "file", "name": "b.txt", "storageKey": "uploads/b", "groupSize": 2, "createdAt": "2026-10-19T12:00:01"},
        {"id": "e1", "kind": "text", "text": "hello", "createdAt": "2026-10-19T12:00:00"},
    ])

    result = _invoke(["list"])

    assert result.exit_code == 0
    assert "a.txt (1 of 2)" in result.output
    assert "hello" in result.output

def test_upload_exits_nonzero_on_partial_failure(tmp_path, httpx_mock):
    good = tmp_path / "good.txt"
    good.write_text("ok")
    bad = tmp_path / "bad.txt"
    bad.write_text("nope")
    httpx_mock.add_response(method="POST", url=f"{API_URL}/entries/upload-slots", json={"uploads": [
        {"name": "good.txt", "storageKey": "uploads/1-good.txt", "uploadUrl": "https://storage.test/good", "expiresIn": 900},
        {"name": "bad.txt", "storageKey": "uploads/2-bad.txt", "uploadUrl": "https://storage.test/bad", "expiresIn": 900},
    ]})
    httpx_mock.add_response(method="PUT", url="https://storage.test/good")
    httpx_mock.add_response(method="PUT", url="https://storage.test/bad", status_code=500)
    httpx_mock.add_response(method="POST", url=f"{API_URL}/entries", json={"entry": {
        "id": "e3", "kind": "file", "files": [{"name": "good.txt", "size": 2, "mime": "text/plain", "storageKey": "uploads/1-good.txt"}],
    }})

    result = _invoke(["upload", str(good), str(bad)])

    assert result.exit_code == 1
    assert "uploaded" in result.output
    assert "failed" in result.output
    assert "Entry e3 created with 1 file(s)" in result.output

def test_delete_reports_leftover_objects(httpx_mock):
    httpx_mock.add_response(method="DELETE", url=f"{API_URL}/entries/e2", json={
        "success": True,
        "entryId": "e2",
        "objects": [
            {"storageKey": "uploads/a", "deleted": True, "error": None},
            {"storageKey": "uploads/b", "deleted": False, "error": "storage unreachable"},
        ],
    })

    result = _invoke(["delete", "e2", "--yes"])

    assert result.exit_code == 0
    assert "uploads/b was left behind" in result.output
    assert "Deleted entry e2" in result.output

def test_download_without_output_prints_link(httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=f"{API_URL}/entries/e1/download-url",
        json={"downloadUrl": "https://storage.test/get-me", "expiresIn": 86400},
    )

    result = _invoke(["download", "e1"])

    assert result.exit_code == 0
    assert "https://storage.test/get-me" in result.output

def test_upload_names_unrecorded_objects_when_confirm_fails(tmp_path, httpx_mock):
    doc = tmp_path / "doc.txt"
    doc.write_text("ok")
    httpx_mock.add_response(method="POST", url=f"{API_URL}/entries/upload-slots", json={"uploads": [
        {"name": "doc.txt", "storageKey": "uploads/1-doc.txt", "uploadUrl": "https://storage.test/doc", "expiresIn": 900},
    ]})
    httpx_mock.add_response(method="PUT", url="https://storage.test/doc")
    httpx_mock.add_response(
        method="POST",
        url=f"{API_URL}/entries",
        status_code=500,
        json={"error": "Failed to store file entry", "code": "upstream_error"},
    )

    result = _invoke(["upload", str(doc)])

    assert result.exit_code == 1
    assert "Failed to store file entry" in result.output
    assert "uploads/1-doc.txt was uploaded but not recorded" in result.output
