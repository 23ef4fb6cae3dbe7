"""Unit tests for vault/store.py -- persistence of sealed submissions.

Covers:
- Create/get round trip keeps ciphertext and signature together
- Unsigned submissions are refused
- Listing is scoped by owner
- First grade is create-only; overwrite replaces it
- Delete
"""

import pytest

from vault.models import Submission


def _sealed_submission(protector, owner_id: int = 1, text: str = "hello world") -> Submission:
    sealed = protector.seal(text)
    return Submission(
        owner_id=owner_id,
        owner_name=f"user{owner_id}",
        filename="essay.txt",
        encrypted_content=sealed.ciphertext,
        signature=sealed.signature,
    )


def test_create_and_get(submission_store, protector):
    sub_id = submission_store.create(_sealed_submission(protector))
    stored = submission_store.get(sub_id)
    assert len(sub_id) == 32
    assert stored.submitted_at
    assert not stored.is_graded
    assert protector.decrypt(stored.encrypted_content) == b"hello world"
    assert protector.verify_signature(b"hello world", stored.signature)


def test_unsigned_submission_refused(submission_store, protector):
    sub = _sealed_submission(protector)
    sub.signature = ""
    with pytest.raises(ValueError):
        submission_store.create(sub)


def test_get_missing_returns_none(submission_store):
    assert submission_store.get("does-not-exist") is None


def test_list_scoped_by_owner(submission_store, protector):
    submission_store.create(_sealed_submission(protector, owner_id=1))
    submission_store.create(_sealed_submission(protector, owner_id=2))
    submission_store.create(_sealed_submission(protector, owner_id=1))
    assert len(submission_store.list_submissions()) == 3
    assert {s.owner_id for s in submission_store.list_submissions(owner_id=1)} == {1}
    assert len(submission_store.list_submissions(owner_id=1)) == 2


def test_first_grade_is_create_only(submission_store, protector):
    sub_id = submission_store.create(_sealed_submission(protector))
    first = protector.seal('{"grade": "A"}')
    second = protector.seal('{"grade": "B"}')
    assert submission_store.set_grade(sub_id, first.ciphertext, first.signature, "rita", overwrite=False)
    assert not submission_store.set_grade(sub_id, second.ciphertext, second.signature, "ray", overwrite=False)
    stored = submission_store.get(sub_id)
    assert stored.graded_by == "rita"
    assert protector.decrypt(stored.encrypted_grade) == b'{"grade": "A"}'

    assert submission_store.set_grade(sub_id, second.ciphertext, second.signature, "ray")
    assert submission_store.get(sub_id).graded_by == "ray"


def test_grade_requires_signature(submission_store, protector):
    sub_id = submission_store.create(_sealed_submission(protector))
    with pytest.raises(ValueError):
        submission_store.set_grade(sub_id, "00:00", "", "rita")


def test_delete(submission_store, protector):
    sub_id = submission_store.create(_sealed_submission(protector))
    assert submission_store.delete(sub_id)
    assert submission_store.get(sub_id) is None
    assert not submission_store.delete(sub_id)
