from urllib.parse import urlsplit

import pytest


def path_of(url):
    return urlsplit(url).path


@pytest.mark.parametrize(
    "filename, content",
    [
        ("a.txt", b"hello"),
        ("report 2024.pdf", b"%PDF-1.4 fake"),
        ("../../etc/passwd", b"\x00\x01binary\xff"),
    ],
)
def test_upload_then_download_round_trip(client, filename, content):
    upload = client.post("/upload", content=content, headers={"Dir": "docs", "Filename": filename})
    url = upload.json()["url"]

    response = client.get(path_of(url))

    assert response.status_code == 200
    assert response.content == content


def test_download_serves_existing_file_without_admission(make_client, storage_dir):
    (storage_dir / "public").mkdir()
    (storage_dir / "public" / "note.txt").write_bytes(b"public")
    client = make_client(peer=("10.0.0.9", 1))

    response = client.get("/files/public/note.txt")

    assert response.status_code == 200
    assert response.content == b"public"
    assert response.headers["content-type"].startswith("text/plain")


def test_download_missing_file(client):
    response = client.get("/files/docs/missing.txt")

    assert response.status_code == 404


def test_download_directory_is_not_served(client, storage_dir):
    (storage_dir / "docs").mkdir()

    response = client.get("/files/docs")

    assert response.status_code == 404


def test_download_cannot_escape_base_directory(client, tmp_path):
    (tmp_path / "secret.txt").write_text("secret")

    response = client.get("/files/%2E%2E/secret.txt")

    assert response.status_code == 404


def test_download_with_null_byte_is_not_found(client):
    response = client.get("/files/docs/a%00b.txt")

    assert response.status_code == 404


def test_stored_name_with_percent_is_served(client, storage_dir):
    (storage_dir / "docs").mkdir()
    (storage_dir / "docs" / "a%20b.txt").write_bytes(b"escaped")

    response = client.get("/files/docs/a%2520b.txt")

    assert response.status_code == 200
    assert response.content == b"escaped"
