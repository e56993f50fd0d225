"""Tests for the redirects command-line tools in main.py."""

import json

import pytest

from main import main


@pytest.fixture
def rules_file(tmp_path):
    path = tmp_path / "redirects.json"
    path.write_text(
        json.dumps(
            [
                {"from": "/old-page/", "to": "/new-page/", "permanent": True},
                {"from": "^/blog/(\\d{4})/(.+)$", "to": "/archive/$1/$2/"},
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_check_lists_rules(rules_file, capsys):
    assert main(["check", str(rules_file)]) == 0
    out = capsys.readouterr().out
    assert "2 rule(s)" in out
    assert "301  /old-page/?$  ->  /new-page/" in out
    assert "302  ^/blog/(\\d{4})/(.+)$  ->  /archive/$1/$2/" in out


def test_check_json_prints_normalized_rules(rules_file, capsys):
    assert main(["check", str(rules_file), "--json"]) == 0
    rules = json.loads(capsys.readouterr().out)
    assert rules[0] == {"from": "/old-page/?$", "to": "/new-page/", "permanent": True}
    assert rules[1]["permanent"] is False


def test_check_missing_file_is_not_an_error(tmp_path, capsys):
    assert main(["check", str(tmp_path / "absent.json")]) == 0
    assert "custom redirects disabled" in capsys.readouterr().out


def test_check_invalid_file_fails(tmp_path, capsys):
    path = tmp_path / "redirects.json"
    path.write_text(json.dumps([{"from": "/a", "to": "/b"}, {"from": "/c"}]), encoding="utf-8")
    assert main(["check", str(path)]) == 1
    out = capsys.readouterr().out
    assert "[!]" in out
    assert "rule #1, field 'to'" in out


def test_resolve_match(rules_file, capsys):
    assert main(["resolve", "/old-page?x=1", "--file", str(rules_file), "--max-age", "60"]) == 0
    out = capsys.readouterr().out
    assert "301 /new-page?x=1" in out
    assert "public, max-age=60" in out


def test_resolve_defaults_to_configured_max_age(rules_file, capsys, monkeypatch):
    from core.config import get_settings

    monkeypatch.setattr(get_settings(), "redirects_max_age", 120)
    assert main(["resolve", "/old-page", "--file", str(rules_file)]) == 0
    assert "public, max-age=120" in capsys.readouterr().out


def test_resolve_capture_groups(rules_file, capsys):
    assert main(["resolve", "/blog/2019/hello", "--file", str(rules_file)]) == 0
    assert "302 /archive/2019/hello/" in capsys.readouterr().out


def test_resolve_no_match(rules_file, capsys):
    assert main(["resolve", "/elsewhere", "--file", str(rules_file)]) == 0
    assert "no redirect" in capsys.readouterr().out


def test_resolve_invalid_file_fails(tmp_path, capsys):
    path = tmp_path / "redirects.json"
    path.write_text("{oops", encoding="utf-8")
    assert main(["resolve", "/a", "--file", str(path)]) == 1


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage:" in capsys.readouterr().out
