import pytest

from webctx.fs import DirFS, directory


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "a.txt").write_bytes(b"alpha")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "b.txt").write_bytes(b"beta")
    return tmp_path


def test_open_reads_file(tree):
    fs = directory(str(tree), True)
    with fs.open("/a.txt") as handle:
        assert handle.read() == b"alpha"
    with fs.open("sub/b.txt") as handle:
        assert handle.read() == b"beta"


def test_open_cannot_escape_root(tree):
    fs = DirFS(str(tree / "sub"), True)
    with fs.open("../../b.txt") as handle:
        assert handle.read() == b"beta"


def test_open_missing_raises(tree):
    fs = directory(str(tree), False)
    with pytest.raises(FileNotFoundError):
        fs.open("missing.txt")


def test_listing_enabled(tree):
    fs = directory(str(tree), True)
    assert fs.listdir("/") == ["a.txt", "sub"]
    assert fs.listdir("sub") == ["b.txt"]


def test_listing_disabled_hides_entries(tree):
    fs = directory(str(tree), False)
    assert fs.listdir("/") == []
    with fs.open("a.txt") as handle:
        assert handle.read() == b"alpha"


def test_directory_keeps_settings(tree):
    fs = directory(str(tree), False)
    assert fs.root == str(tree)
    assert fs.list_directory is False