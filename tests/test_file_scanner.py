import pytest

from pipeline.file_scanner import FileScanner, is_eligible_name


@pytest.mark.parametrize("filename, eligible", [
    ("design1.png", True),
    ("design1.PNG", True),
    ("photo.jpeg", True),
    ("photo.JPG", True),
    ("notes.txt", False),
    ("animation.gif", False),
    (".hidden.png", False),
    (".png", False),
    ("no_extension", False),
])
def test_is_eligible_name(filename, eligible):
    assert is_eligible_name(filename) is eligible


def test_scan_lists_eligible_files_only(tmp_path):
    (tmp_path / "b.png").write_bytes(b"x")
    (tmp_path / "A.jpg").write_bytes(b"x")
    (tmp_path / ".c.png").write_bytes(b"x")
    (tmp_path / "readme.md").write_text("x")
    nested = tmp_path / "nested.png"
    nested.mkdir()
    (nested / "d.png").write_bytes(b"x")

    found = FileScanner().scan(tmp_path)

    assert [p.name for p in found] == ["A.jpg", "b.png"]


def test_scan_rejects_missing_directory(tmp_path):
    with pytest.raises(ValueError, match="does not exist"):
        FileScanner().scan(tmp_path / "missing")

    file_path = tmp_path / "file.png"
    file_path.write_bytes(b"x")
    with pytest.raises(ValueError, match="not a directory"):
        FileScanner().scan(file_path)
