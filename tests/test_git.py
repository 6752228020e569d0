from datetime import datetime, timezone

import pytest

from brakenotify.git import (
    GitLog,
    clean_email,
    find_git_dir,
    get_git_info,
    git_head,
    git_last_checkout,
    git_revision,
    last_checkout_line,
    trim_newline,
)

CLONE_LINE = (
    "0000 1111 Jane Doe <jane@example.com> 1600000000 +0000\tclone: from somewhere\n"
)
COMMIT_LINE = (
    "1111 2222 Jane Doe <jane@example.com> 1600000100 +0000\tcommit: change\n"
)


def make_repo(root, head="ref: refs/heads/main\n"):
    git = root / ".git"
    git.mkdir()
    (git / "HEAD").write_text(head)
    return git


def test_trim_newline_bytes_and_str():
    assert trim_newline(b"abc\r\n") == b"abc"
    assert trim_newline("abc\n") == "abc"
    assert trim_newline("abc\r") == "abc\r"
    assert trim_newline("") == ""


def test_clean_email():
    assert clean_email("<jane@example.com>") == "jane@example.com"
    assert clean_email("Jane") == ""
    assert clean_email("") == ""


def test_find_git_dir_from_nested_directory(tmp_path):
    make_repo(tmp_path)
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    assert find_git_dir(str(nested)) == str(tmp_path)


def test_find_git_dir_missing_directory(tmp_path):
    assert find_git_dir(str(tmp_path / "does-not-exist")) is None


def test_git_head(tmp_path):
    make_repo(tmp_path)
    assert git_head(str(tmp_path)) == b"ref: refs/heads/main"


def test_git_revision_from_ref_file(tmp_path):
    git = make_repo(tmp_path)
    (git / "refs" / "heads").mkdir(parents=True)
    (git / "refs" / "heads" / "main").write_text("abc123\n")
    assert git_revision(str(tmp_path)) == "abc123"


def test_git_revision_from_packed_refs(tmp_path):
    git = make_repo(tmp_path)
    (git / "packed-refs").write_text(
        "# pack-refs with: peeled\n"
        "deadbeef refs/heads/other\n"
        "^cafebabe\n"
        "feedface refs/heads/main\n"
    )
    assert git_revision(str(tmp_path)) == "feedface"


def test_git_revision_detached_head(tmp_path):
    make_repo(tmp_path, head="0123abcd\n")
    assert git_revision(str(tmp_path)) == "0123abcd"


def test_git_revision_unknown_ref(tmp_path):
    git = make_repo(tmp_path)
    (git / "packed-refs").write_text("deadbeef refs/heads/other\n")
    with pytest.raises(ValueError):
        git_revision(str(tmp_path))


def test_last_checkout_line_picks_last_matching(tmp_path):
    logfile = tmp_path / "HEAD"
    logfile.write_text(CLONE_LINE + COMMIT_LINE)
    assert last_checkout_line(str(logfile)) == CLONE_LINE.rstrip("\n")


def test_last_checkout_line_without_entries(tmp_path):
    logfile = tmp_path / "HEAD"
    logfile.write_text(COMMIT_LINE)
    with pytest.raises(ValueError):
        last_checkout_line(str(logfile))


def test_git_last_checkout(tmp_path):
    git = make_repo(tmp_path)
    (git / "logs").mkdir()
    (git / "logs" / "HEAD").write_text(CLONE_LINE + COMMIT_LINE)
    info = git_last_checkout(str(tmp_path))
    assert info == GitLog(
        username="Jane Doe",
        email="jane@example.com",
        revision="1111",
        time=datetime.fromtimestamp(1600000000, tz=timezone.utc),
    )


def test_git_last_checkout_unparsable(tmp_path):
    git = make_repo(tmp_path)
    (git / "logs").mkdir()
    (git / "logs" / "HEAD").write_text("a b c\tclone: x\n")
    with pytest.raises(ValueError):
        git_last_checkout(str(tmp_path))


def test_get_git_info_is_cached(tmp_path):
    git = make_repo(tmp_path, head="0123abcd\n")
    (git / "logs").mkdir()
    (git / "logs" / "HEAD").write_text(CLONE_LINE)
    info = get_git_info(str(tmp_path))
    assert info.revision == "0123abcd"
    assert info.last_checkout.revision == "1111"
    assert get_git_info(str(tmp_path)) is info


def test_git_log_to_dict_round_trip_fields():
    when = datetime.fromtimestamp(1600000000, tz=timezone.utc)
    log = GitLog(username="Jane", email="jane@example.com", revision="r", time=when)
    data = log.to_dict()
    assert data["username"] == "Jane"
    assert datetime.fromisoformat(data["time"]) == when