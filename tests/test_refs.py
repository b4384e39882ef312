"""Tests for backup ref naming and ls-remote parsing."""

from __future__ import annotations

import pytest

from ghostbackup.refs import (
    BACKUP_NAMESPACE,
    backup_ref,
    backup_ref_pattern,
    parse_backup_ref,
    parse_ls_remote,
    sanitize_ref_name,
)

FORBIDDEN = "@ :/\\^~?*["

SAMPLES = [
    "",
    "alice",
    "alice@example.com",
    "Alice Smith",
    "feature/login",
    "fix: colon",
    "back\\slash",
    "caret^tilde~",
    "what?*[x]",
    "release/2024-01/@hotfix",
]


class TestSanitizeRefName:
    """Tests for sanitize_ref_name."""

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_no_forbidden_characters(self, raw):
        result = sanitize_ref_name(raw)
        for ch in FORBIDDEN:
            assert ch not in result

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_idempotent(self, raw):
        once = sanitize_ref_name(raw)
        assert sanitize_ref_name(once) == once

    def test_at_sign_is_spelled_out(self):
        assert sanitize_ref_name("alice@example.com") == "alice_at_example.com"

    def test_slash_and_space(self):
        assert sanitize_ref_name("feature/login page") == "feature_login_page"

    def test_every_mapped_character(self):
        assert sanitize_ref_name(":\\^~?*[") == "_______"

    def test_empty_stays_empty(self):
        assert sanitize_ref_name("") == ""

    def test_allowed_characters_untouched(self):
        assert sanitize_ref_name("release-1.2_rc]") == "release-1.2_rc]"


class TestBackupRef:
    """Tests for composing and decoding backup slots."""

    def test_compose(self):
        assert backup_ref("alice", "main") == "refs/backups/alice/main"

    def test_compose_sanitizes_both_parts(self):
        assert (
            backup_ref("Alice Smith", "feature/login")
            == "refs/backups/Alice_Smith/feature_login"
        )

    def test_pattern_for_one_branch(self):
        assert backup_ref_pattern("alice", "dev/x") == "refs/backups/alice/dev_x"

    def test_pattern_for_all_branches(self):
        assert backup_ref_pattern("alice") == "refs/backups/alice/*"

    def test_parse(self):
        loc = parse_backup_ref("refs/backups/alice/feature_login", hash="abc")
        assert loc.user == "alice"
        assert loc.branch == "feature_login"
        assert loc.hash == "abc"

    def test_parse_composed_ref(self):
        loc = parse_backup_ref(backup_ref("bob@corp.io", "hotfix/1"))
        assert loc.user == "bob_at_corp.io"
        assert loc.branch == "hotfix_1"

    @pytest.mark.parametrize("ref", [
        "refs/heads/main",
        "refs/backups/alice",
        "refs/backups/alice/",
        "refs/backups//main",
        "refs/backups/alice/main/extra",
    ])
    def test_parse_rejects_non_slots(self, ref):
        with pytest.raises(ValueError):
            parse_backup_ref(ref)

    def test_namespace(self):
        assert BACKUP_NAMESPACE == "refs/backups"


class TestParseLsRemote:
    """Tests for parsing ls-remote output."""

    def test_tab_separated_lines(self):
        output = (
            "1111111111111111111111111111111111111111\trefs/backups/alice/main\n"
            "2222222222222222222222222222222222222222\trefs/backups/alice/dev\n"
        )
        refs = parse_ls_remote(output)
        assert [r.ref for r in refs] == ["refs/backups/alice/main", "refs/backups/alice/dev"]
        assert refs[0].hash == "1" * 40
        assert refs[0].short_hash == "1" * 12

    def test_skips_blank_and_short_lines(self):
        output = "\n  \nlonely\nabc refs/backups/a/b\n"
        refs = parse_ls_remote(output)
        assert len(refs) == 1
        assert refs[0].hash == "abc"

    def test_empty_output(self):
        assert parse_ls_remote("") == []
