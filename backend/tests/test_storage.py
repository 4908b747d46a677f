import pytest

from app.services.storage import LocalStorage, UploadError, escape_filename, split_directory

BASE_URL = "http://files.example.test/files"


@pytest.fixture
def storage(storage_dir):
    return LocalStorage(storage_dir, BASE_URL + "/")


def test_save_writes_file_and_returns_url(storage, storage_dir):
    url = storage.save("docs", "a.txt", b"hello")

    assert url == f"{BASE_URL}/docs/a.txt"
    assert (storage_dir / "docs" / "a.txt").read_bytes() == b"hello"


def test_save_creates_nested_directories(storage, storage_dir):
    storage.save("2024/invoices", "inv.pdf", b"%PDF")

    assert (storage_dir / "2024" / "invoices" / "inv.pdf").read_bytes() == b"%PDF"


def test_save_overwrites_existing_file(storage, storage_dir):
    storage.save("docs", "a.txt", b"first")
    storage.save("docs", "a.txt", b"second")

    assert (storage_dir / "docs" / "a.txt").read_bytes() == b"second"


def test_filename_separators_are_escaped(storage, storage_dir, tmp_path):
    url = storage.save("docs", "../../etc/passwd", b"x")

    stored = storage_dir / "docs" / "..%2F..%2Fetc%2Fpasswd"
    assert stored.read_bytes() == b"x"
    assert url == f"{BASE_URL}/docs/..%252F..%252Fetc%252Fpasswd"
    assert not (tmp_path / "etc").exists()


@pytest.mark.parametrize("filename", ["", ".", "..", "   "])
def test_escape_filename_rejects_dot_names(filename):
    with pytest.raises(UploadError):
        escape_filename(filename)


def test_escape_filename_escapes_backslash_and_spaces():
    assert escape_filename("a b\\c.txt") == "a%20b%5Cc.txt"


@pytest.mark.parametrize("directory", ["..", "../outside", "docs/../..", "/abs", "a//b", "."])
def test_traversal_directories_are_rejected(storage, directory, tmp_path):
    with pytest.raises(UploadError):
        storage.save(directory, "a.txt", b"x")

    assert not (tmp_path / "outside").exists()
    assert not (tmp_path / "a.txt").exists()


def test_split_directory_accepts_both_separators():
    assert split_directory("a/b\\c") == ["a", "b", "c"]


def test_resolve_returns_stored_file(storage, storage_dir):
    storage.save("docs", "a.txt", b"hello")

    assert storage.resolve("docs/a.txt") == (storage_dir / "docs" / "a.txt").resolve()


def test_resolve_rejects_missing_directories_and_escapes(storage, storage_dir, tmp_path):
    (tmp_path / "secret.txt").write_text("secret")
    storage.save("docs", "a.txt", b"hello")

    assert storage.resolve("docs/missing.txt") is None
    assert storage.resolve("docs") is None
    assert storage.resolve("../secret.txt") is None


def test_write_failure_is_raised(storage, storage_dir):
    (storage_dir / "docs").write_text("not a directory")

    with pytest.raises(OSError):
        storage.save("docs", "a.txt", b"x")


def test_resolve_rejects_null_byte(storage):
    assert storage.resolve("docs/a\x00b.txt") is None
