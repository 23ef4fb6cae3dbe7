"""
tests/test_cli.py -- Tests for the operator command line in main.py.

Commands build their components through main._components(); the cli_env
fixture replaces it with a factory over a temporary SQLite file and fixed
keys, so state written by one command is readable by the next.
"""

from __future__ import annotations

import json
import secrets
from types import SimpleNamespace

import pytest

import main
from api.main import close_state, configure_state
from auth.models import Role
from core.config import Settings
from vault.protector import SealedContent
from vault.store import SubmissionStore, _submissions

PASSWORD = "Correct-Horse-9!"


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Patch main._components to a file-backed graph; yield a factory for inspection."""
    settings = Settings(
        debug=True,
        database_url=f"sqlite:///{tmp_path / 'cli.db'}",
        secret_key=secrets.token_hex(32),
        encryption_key=secrets.token_hex(32),
        content_signing_key=secrets.token_hex(32),
        bcrypt_rounds=4,
        _env_file=None,
    )

    def build() -> SimpleNamespace:
        state = SimpleNamespace()
        configure_state(state, settings)
        return state

    monkeypatch.setattr(main, "_components", build)
    return build


@pytest.fixture
def seeded(cli_env):
    state = cli_env()
    state.auth.register("alice", PASSWORD, Role.SUBMITTER)
    close_state(state)
    return cli_env


LEGACY = [
    {"owner": "alice", "filename": "old.txt", "content": "legacy answer", "grade": "B", "feedback": "ok"},
    {"owner": "nobody", "filename": "x.txt", "content": "orphan"},
    "not an object",
]


class TestMigrateRecords:
    def test_counts_and_skips(self, seeded) -> None:
        state = seeded()
        try:
            assert main.migrate_records(state, LEGACY) == (1, 2)
            [sub] = state.submission_store.list_submissions()
            assert sub.owner_name == "alice"
            assert "legacy answer" not in sub.encrypted_content
            assert state.protector.unseal(SealedContent(sub.encrypted_content, sub.signature)) == b"legacy answer"
            grade = state.protector.unseal(SealedContent(sub.encrypted_grade, sub.grade_signature))
            assert json.loads(grade) == {"feedback": "ok", "grade": "B"}
            assert sub.graded_by == "legacy"
            actions = [r.action for r in state.audit_store.list_recent()]
            assert actions.count("submission.migrate") == 1
        finally:
            close_state(state)

    def test_migrate_command(self, seeded, tmp_path, capsys) -> None:
        path = tmp_path / "legacy.json"
        path.write_text(json.dumps(LEGACY[:1]), encoding="utf-8")
        assert main.main(["migrate-legacy", str(path)]) == 0
        assert "Migrated 1 record(s), skipped 0." in capsys.readouterr().out

    def test_partial_migration_exits_nonzero(self, seeded, tmp_path) -> None:
        path = tmp_path / "legacy.json"
        path.write_text(json.dumps(LEGACY), encoding="utf-8")
        assert main.main(["migrate-legacy", str(path)]) == 1

    def test_rejects_non_array(self, seeded, tmp_path) -> None:
        path = tmp_path / "legacy.json"
        path.write_text('{"owner": "alice"}', encoding="utf-8")
        assert main.main(["migrate-legacy", str(path)]) == 1

    def test_rejects_missing_file(self, seeded, tmp_path) -> None:
        assert main.main(["migrate-legacy", str(tmp_path / "absent.json")]) == 1


class TestVerifyIntegrity:
    def test_clean_store_passes(self, seeded, capsys) -> None:
        state = seeded()
        main.migrate_records(state, LEGACY[:1])
        close_state(state)
        assert main.main(["verify-integrity"]) == 0
        assert "1 ok, 0 failed" in capsys.readouterr().out

    def test_tampered_signature_fails(self, seeded, capsys) -> None:
        state = seeded()
        main.migrate_records(state, LEGACY[:1])
        store: SubmissionStore = state.submission_store
        [sub] = store.list_submissions()
        with store.engine.begin() as conn:
            conn.execute(_submissions.update().where(_submissions.c.id == sub.id).values(signature="f" * 64))
        close_state(state)

        assert main.main(["verify-integrity"]) == 1
        assert "signature mismatch" in capsys.readouterr().out

        state = seeded()
        try:
            sweep = state.audit_store.list_recent(limit=1, action_prefix="integrity.")[0]
            assert "1 failed" in sweep.detail
        finally:
            close_state(state)


class TestCreateAccount:
    def test_creates_account(self, cli_env, monkeypatch) -> None:
        monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": PASSWORD)
        assert main.main(["create-account", "rita", "--role", "reviewer"]) == 0
        state = cli_env()
        try:
            account = state.account_store.get_by_username("rita")
            assert account.role == Role.REVIEWER
        finally:
            close_state(state)

    def test_weak_password_rejected(self, cli_env, monkeypatch) -> None:
        monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": "short")
        assert main.main(["create-account", "weak"]) == 1

    def test_confirmation_mismatch(self, cli_env, monkeypatch) -> None:
        answers = iter([PASSWORD, PASSWORD + "x"])
        monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": next(answers))
        assert main.main(["create-account", "typo"]) == 1


def test_acl_prints_matrix(capsys) -> None:
    assert main.main(["acl"]) == 0
    out = capsys.readouterr().out
    for role in ("submitter", "reviewer", "auditor"):
        assert role in out
