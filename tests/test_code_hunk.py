import pytest

from brakenotify.code_hunk import get_code


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "source.txt"
    path.write_text("".join(f"line {n}\n" for n in range(1, 11)))
    return path


def test_lines_around_middle(source_file):
    code = get_code(str(source_file), 5)
    assert code == {n: f"line {n}" for n in range(3, 8)}


def test_lines_at_start(source_file):
    code = get_code(str(source_file), 1)
    assert sorted(code) == [1, 2, 3]
    assert code[1] == "line 1"


def test_lines_at_end(source_file):
    code = get_code(str(source_file), 10)
    assert sorted(code) == [8, 9, 10]


def test_long_lines_are_truncated(tmp_path):
    path = tmp_path / "long.txt"
    path.write_text("x" * 2000 + "\n")
    code = get_code(str(path), 1)
    assert len(code[1]) == 512


def test_crlf_is_stripped(tmp_path):
    path = tmp_path / "crlf.txt"
    path.write_bytes(b"first\r\nsecond\r\n")
    code = get_code(str(path), 1)
    assert code == {1: "first", 2: "second"}


def test_missing_file_raises_and_is_cached(tmp_path):
    path = tmp_path / "missing.txt"
    with pytest.raises(FileNotFoundError):
        get_code(str(path), 3)
    path.write_text("now here\n")
    with pytest.raises(FileNotFoundError):
        get_code(str(path), 3)
    assert get_code(str(path), 1) == {1: "now here"}