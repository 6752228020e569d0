import re

import pytest

from brakenotify.filters import (
    FILTERED,
    code_hunks_filter,
    filter_by_key,
    git_filter,
    gopath_filter,
    http_unsolicited_response_filter,
    new_blocklist_keys_filter,
    new_notifier_filter,
)
from brakenotify.notice import Notice, NoticeError, StackFrame


def _notice(type_="ValueError", message="boom", frames=()):
    return Notice(errors=[NoticeError(type=type_, message=message, backtrace=list(frames))])


def test_notifier_filter_sets_environment_and_revision():
    notice = _notice()
    result = new_notifier_filter("production", "abc")(notice)
    assert result.context["environment"] == "production"
    assert result.context["revision"] == "abc"


def test_notifier_filter_skips_empty_values():
    notice = _notice()
    new_notifier_filter("", "")(notice)
    assert "environment" not in notice.context
    assert "revision" not in notice.context


def test_blocklist_string_key():
    notice = _notice()
    notice.env["password"] = "password"
    notice.context["user"] = "jane"
    notice.session["password"] = "password"
    new_blocklist_keys_filter("password")(notice)
    assert notice.env["password"] == FILTERED
    assert notice.session["password"] == FILTERED
    assert notice.context["user"] == "jane"


def test_blocklist_regex_key():
    notice = _notice()
    notice.env.update({"api_token": "token", "auth_token": "token", "path": "/x"})
    new_blocklist_keys_filter(re.compile("token"))(notice)
    assert notice.env["api_token"] == "[Filtered]"
    assert notice.env["auth_token"] == "[Filtered]"
    assert notice.env["path"] == "/x"


def test_filter_by_key_rejects_unsupported_type():
    with pytest.raises(TypeError):
        filter_by_key({"a": 1}, 42)


def test_blocklist_with_unsupported_key_raises_when_applied():
    flt = new_blocklist_keys_filter(3.5)
    with pytest.raises(TypeError):
        flt(_notice())


def test_gopath_filter_replaces_prefix(tmp_path):
    gopath = str(tmp_path / "go")
    frame_file = str(tmp_path / "go" / "src" / "pkg" / "x.go")
    notice = _notice(frames=[StackFrame(file=frame_file, line=1, func="f")])
    notice.context["gopath"] = gopath
    gopath_filter(notice)
    assert notice.errors[0].backtrace[0].file.startswith("/GOPATH")
    assert notice.errors[0].backtrace[0].file.endswith("x.go")
    assert str(tmp_path) not in notice.errors[0].backtrace[0].file


def test_gopath_filter_without_gopath_is_noop():
    notice = _notice(frames=[StackFrame(file="/a/b.py", line=1, func="f")])
    gopath_filter(notice)
    assert notice.errors[0].backtrace[0].file == "/a/b.py"


def test_unsolicited_response_is_dropped():
    message = "Unsolicited response received on idle HTTP channel starting with 'x'"
    assert http_unsolicited_response_filter(_notice("str", message)) is None


def test_other_errors_are_kept():
    notice = _notice("ValueError", "Unsolicited response received on idle HTTP channel starting with")
    assert http_unsolicited_response_filter(notice) is notice
    plain = _notice("str", "something else")
    assert http_unsolicited_response_filter(plain) is plain


def test_code_hunks_filter_attaches_code(tmp_path):
    source = tmp_path / "hunk_source.py"
    source.write_text("a\nb\nc\nd\ne\nf\ng\n")
    notice = _notice(frames=[StackFrame(file=str(source), line=3, func="f")])
    code_hunks_filter(notice)
    assert notice.errors[0].backtrace[0].code == {1: "a", 2: "b", 3: "c", 4: "d", 5: "e"}


def test_code_hunks_filter_skips_missing_file(tmp_path):
    missing = str(tmp_path / "does_not_exist.py")
    notice = _notice(frames=[StackFrame(file=missing, line=3, func="f")])
    code_hunks_filter(notice)
    assert notice.errors[0].backtrace[0].code is None


def _make_checkout(root, sha):
    git_dir = root / ".git"
    (git_dir / "logs").mkdir(parents=True)
    (git_dir / "HEAD").write_text(sha + "\n")
    (git_dir / "logs" / "HEAD").write_text(
        f"0000 {sha} Jane Doe <jane@example.com> 1600000000 +0000\tcheckout: moving\n"
    )


def test_git_filter_adds_revision_and_checkout(tmp_path):
    sha = "1234567890abcdef1234567890abcdef12345678"
    _make_checkout(tmp_path, sha)
    notice = _notice()
    notice.context["rootDirectory"] = str(tmp_path)
    git_filter(notice)
    assert notice.context["revision"] == sha
    assert notice.context["lastCheckout"].email == "jane@example.com"
    assert notice.context["lastCheckout"].username == "Jane Doe"


def test_git_filter_keeps_existing_revision(tmp_path):
    sha = "abcdefabcdefabcdefabcdefabcdefabcdefabcd"
    _make_checkout(tmp_path, sha)
    notice = _notice()
    notice.context["rootDirectory"] = str(tmp_path)
    notice.context["revision"] = "mine"
    git_filter(notice)
    assert notice.context["revision"] == "mine"


def test_git_filter_without_checkout_is_noop(tmp_path):
    notice = _notice()
    notice.context["rootDirectory"] = str(tmp_path / "missing")
    git_filter(notice)
    assert "lastCheckout" not in notice.context
    assert "revision" not in notice.context