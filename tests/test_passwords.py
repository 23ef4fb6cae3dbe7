"""Unit tests for auth/passwords.py -- credential policy and bcrypt hashing.

Covers:
- verify(p, hash(p)) is true; a different password does not verify
- Each hash carries its own salt (same password, different hashes)
- hash("") raises InvalidCredential
- Policy rejects empty, short, over-72-byte, and missing-class passwords
- PolicyViolation is an InvalidCredential
- Malformed stored hashes are a non-match, not an exception
"""

import pytest

from auth.passwords import DUMMY_HASH, PasswordHasher, check_password_policy
from core.errors import InvalidCredential, PolicyViolation


def test_hash_then_verify_round_trip(hasher):
    hashed = hasher.hash("Correct-Horse-9!")
    assert hasher.verify("Correct-Horse-9!", hashed)


def test_wrong_password_does_not_verify(hasher):
    hashed = hasher.hash("Correct-Horse-9!")
    assert not hasher.verify("Correct-Horse-8!", hashed)


def test_each_hash_has_its_own_salt(hasher):
    first = hasher.hash("Correct-Horse-9!")
    second = hasher.hash("Correct-Horse-9!")
    assert first != second
    assert hasher.verify("Correct-Horse-9!", first)
    assert hasher.verify("Correct-Horse-9!", second)


def test_hash_uses_configured_cost(hasher):
    assert hasher.hash("Correct-Horse-9!").startswith("$2b$04$")


def test_hash_empty_password_raises(hasher):
    with pytest.raises(InvalidCredential):
        hasher.hash("")


def test_verify_empty_inputs_is_false(hasher):
    hashed = hasher.hash("Correct-Horse-9!")
    assert not hasher.verify("", hashed)
    assert not hasher.verify("Correct-Horse-9!", "")


def test_malformed_hash_is_non_match(hasher):
    assert not hasher.verify("Correct-Horse-9!", "not-a-bcrypt-hash")


def test_dummy_hash_is_a_real_bcrypt_hash():
    assert DUMMY_HASH.startswith("$2b$")
    assert not PasswordHasher(rounds=4).verify("anything-at-all", DUMMY_HASH)


class TestPasswordPolicy:
    def test_strong_password_passes(self):
        check_password_policy("Correct-Horse-9!")

    @pytest.mark.parametrize(
        "password, missing",
        [
            ("Short-1a", "at least 12 characters"),
            ("correct-horse-9!", "an uppercase letter"),
            ("CORRECT-HORSE-9!", "a lowercase letter"),
            ("Correct-Horse-X!", "a digit"),
            ("CorrectHorse9999", "a symbol"),
        ],
    )
    def test_each_rule_is_reported(self, password, missing):
        with pytest.raises(PolicyViolation) as exc_info:
            check_password_policy(password)
        assert missing in exc_info.value.detail

    def test_empty_password_rejected(self):
        with pytest.raises(PolicyViolation):
            check_password_policy("")

    def test_over_72_bytes_rejected(self):
        with pytest.raises(PolicyViolation) as exc_info:
            check_password_policy("Aa1!" + "x" * 70)
        assert "72 bytes" in exc_info.value.detail

    def test_all_unmet_rules_listed_together(self):
        with pytest.raises(PolicyViolation) as exc_info:
            check_password_policy("abc")
        detail = exc_info.value.detail
        for rule in ("at least 12 characters", "an uppercase letter", "a digit", "a symbol"):
            assert rule in detail

    def test_min_length_is_configurable(self):
        check_password_policy("Ab1!efgh", min_length=8)
        with pytest.raises(PolicyViolation):
            check_password_policy("Ab1!efgh", min_length=9)

    def test_policy_violation_is_invalid_credential(self):
        with pytest.raises(InvalidCredential):
            check_password_policy("weak")
