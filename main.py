#!/usr/bin/env python3
"""
SubmitVault -- operator command line.

Usage:
  python main.py create-account alice --role reviewer
  python main.py acl
  python main.py verify-integrity
  python main.py migrate-legacy legacy_submissions.json

Configuration comes from the same environment variables and .env file as the
API server (SECRET_KEY, ENCRYPTION_KEY, CONTENT_SIGNING_KEY, DATABASE_URL).
Run against the production database with the production keys; content sealed
under one ENCRYPTION_KEY cannot be read under another.

Legacy file format (migrate-legacy): a JSON array of objects, each with
  owner         username of an existing account (required)
  filename      original file name (required)
  content       plaintext, or base64 text when is_binary is true (required)
  content_type  optional, default "text/plain"
  is_binary     optional, default false
  submitted_at  optional ISO 8601 timestamp, kept as-is
  grade, feedback, graded_by   optional; sealed together when grade is present
"""

import argparse
import getpass
import json
import sys
from pathlib import Path
from types import SimpleNamespace

from api.main import close_state, configure_state
from audit.models import Origin
from auth.acl import DEFAULT_POLICY
from auth.models import ResourceType, Role
from core.config import get_settings
from core.errors import DecryptionFailed, PolicyViolation, SignatureMismatch
from vault.models import Submission
from vault.protector import SealedContent

_CLI_ORIGIN = Origin(ip_address="local", user_agent="submitvault-cli")


def _components() -> SimpleNamespace:
    """Build the same component graph the API server uses, outside FastAPI."""
    state = SimpleNamespace()
    configure_state(state, get_settings())
    return state


# ---------------------------------------------------------------------------
# create-account
# ---------------------------------------------------------------------------


def cmd_create_account(args: argparse.Namespace) -> int:
    password = getpass.getpass("  Password: ")
    if password != getpass.getpass("  Confirm:  "):
        print("  [!] Passwords do not match.")
        return 1
    state = _components()
    try:
        account = state.auth.register(args.username, password, Role(args.role), _CLI_ORIGIN)
    except PolicyViolation as exc:
        print(f"  [!] {exc.message} {exc.detail or ''}".rstrip())
        return 1
    finally:
        close_state(state)
    print(f"  Created account {account.username!r} (id {account.id}, role {account.role.value}).")
    return 0


# ---------------------------------------------------------------------------
# acl
# ---------------------------------------------------------------------------


def cmd_acl(args: argparse.Namespace) -> int:
    matrix = DEFAULT_POLICY.as_dict()
    resources = [r.value for r in ResourceType]
    width = max(len(r) for r in resources) + 2
    print("  " + "role".ljust(12) + "".join(r.ljust(width + 12) for r in resources))
    print("  " + "-" * (12 + (width + 12) * len(resources)))
    for role, row in matrix.items():
        cells = [(", ".join(row[r]) or "--").ljust(width + 12) for r in resources]
        print("  " + role.ljust(12) + "".join(cells))
    return 0


# ---------------------------------------------------------------------------
# verify-integrity
# ---------------------------------------------------------------------------


def _check(state: SimpleNamespace, sealed: SealedContent, label: str) -> bool:
    try:
        state.protector.unseal(sealed)
    except DecryptionFailed as exc:
        print(f"  [!] {label}: cannot decrypt ({exc.detail})")
        return False
    except SignatureMismatch:
        print(f"  [!] {label}: signature mismatch")
        return False
    return True


def cmd_verify_integrity(args: argparse.Namespace) -> int:
    state = _components()
    checked = failed = 0
    try:
        for sub in state.submission_store.iter_all():
            checked += 1
            ok = _check(state, SealedContent(sub.encrypted_content, sub.signature), f"{sub.id} ({sub.filename})")
            if ok and sub.is_graded:
                ok = _check(state, SealedContent(sub.encrypted_grade, sub.grade_signature), f"{sub.id} grade")
            if not ok:
                failed += 1
        state.audit.record(
            None,
            "integrity.sweep",
            ResourceType.SUBMISSION,
            f"Checked {checked} submission(s), {failed} failed",
            _CLI_ORIGIN,
            "cli",
        )
    finally:
        close_state(state)
    print(f"  Checked {checked} submission(s): {checked - failed} ok, {failed} failed.")
    return 1 if failed else 0


# ---------------------------------------------------------------------------
# migrate-legacy
# ---------------------------------------------------------------------------


def _load_legacy(path: str) -> list[dict] | None:
    file_path = Path(path).resolve()
    if not file_path.is_file():
        print(f"  [!] '{path}' is not a readable file.")
        return None
    try:
        records = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"  [!] Could not read '{path}': {e}")
        return None
    if not isinstance(records, list):
        print("  [!] Legacy file must contain a JSON array.")
        return None
    return records


def migrate_records(state: SimpleNamespace, records: list[dict]) -> tuple[int, int]:
    """Seal and store each legacy plaintext record. Returns (migrated, skipped).

    This is the only path by which plaintext enters the store without going
    through the API; the decrypt path never falls back to plaintext.
    """
    migrated = skipped = 0
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            print(f"  [!] Record {index}: not a JSON object; skipped.")
            skipped += 1
            continue
        owner = state.account_store.get_by_username(str(record.get("owner", "")))
        if owner is None or not record.get("filename") or not record.get("content"):
            print(f"  [!] Record {index}: missing owner, filename or content; skipped.")
            skipped += 1
            continue
        sealed = state.protector.seal(record["content"])
        sub_id = state.submission_store.create(
            Submission(
                owner_id=owner.id,
                owner_name=owner.username,
                filename=record["filename"],
                content_type=record.get("content_type", "text/plain"),
                is_binary=bool(record.get("is_binary", False)),
                encrypted_content=sealed.ciphertext,
                signature=sealed.signature,
                submitted_at=record.get("submitted_at", ""),
            )
        )
        if record.get("grade"):
            document = json.dumps({"grade": record["grade"], "feedback": record.get("feedback", "")}, sort_keys=True)
            grade = state.protector.seal(document)
            state.submission_store.set_grade(
                sub_id, grade.ciphertext, grade.signature, graded_by=record.get("graded_by") or "legacy"
            )
        state.audit.record(
            None,
            "submission.migrate",
            ResourceType.SUBMISSION,
            f"Sealed legacy record {index} ({record['filename']!r}) as {sub_id}",
            _CLI_ORIGIN,
            "cli",
        )
        migrated += 1
    return migrated, skipped


def cmd_migrate_legacy(args: argparse.Namespace) -> int:
    records = _load_legacy(args.file)
    if records is None:
        return 1
    state = _components()
    try:
        migrated, skipped = migrate_records(state, records)
    finally:
        close_state(state)
    print(f"  Migrated {migrated} record(s), skipped {skipped}.")
    return 1 if skipped else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="submitvault",
        description="Operator tools for the SubmitVault submission portal.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-account alice --role reviewer
  python main.py acl
  python main.py verify-integrity
  DATABASE_URL=sqlite:///prod.db python main.py migrate-legacy old.json
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-account", help="Create an account (prompts for the password)")
    p.add_argument("username")
    p.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.SUBMITTER.value,
        help="Account role (default: submitter)",
    )
    p.set_defaults(func=cmd_create_account)

    p = sub.add_parser("acl", help="Print the role x resource permission matrix")
    p.set_defaults(func=cmd_acl)

    p = sub.add_parser("verify-integrity", help="Decrypt every submission and check its signature")
    p.set_defaults(func=cmd_verify_integrity)

    p = sub.add_parser("migrate-legacy", help="Seal plaintext records from a legacy JSON export")
    p.add_argument("file", metavar="FILE")
    p.set_defaults(func=cmd_migrate_legacy)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
