"""
api/routes/v1/submissions.py -- Protected submission and grade routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /submissions                       -- encrypt-then-sign and store
  GET    /submissions                       -- list metadata (submitters: own only)
  GET    /submissions/{submission_id}           -- metadata
  GET    /submissions/{submission_id}/content   -- decrypted content (reviewers only)
  GET    /submissions/{submission_id}/verify    -- integrity check
  GET    /submissions/{submission_id}/download  -- original file as an attachment (reviewers only)
  DELETE /submissions/{submission_id}           -- remove record
  POST   /submissions/{submission_id}/grade     -- sealed grade + feedback
  PATCH  /submissions/{submission_id}/grade     -- replace grade
  GET    /submissions/{submission_id}/grade     -- decrypted grade

Authorization happens in two layers:
  1. require_permission() checks the role matrix and audits the decision.
  2. Object-level rules below: a submitter only sees submissions they own, and
     decrypted content is only returned to reviewers. These denials go
     through deny() so they are audited too.

Integrity: every read of protected content decrypts AND verifies the
signature. DecryptionFailed and SignatureMismatch are audited here before
they propagate to the SecurityError handler.
"""

import base64
import json
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import (
    ErrorDetail,
    GradeRequest,
    GradeResponse,
    IntegrityResponse,
    SubmissionContentResponse,
    SubmissionCreate,
    SubmissionSummary,
)
from auth.dependencies import deny, origin_from_request, require_permission
from auth.models import Action, Claims, ResourceType, Role
from core.errors import DecryptionFailed, SignatureMismatch
from vault.models import Submission
from vault.protector import ContentProtector, SealedContent
from vault.store import SubmissionStore

router = APIRouter()

_SUBMISSION = ResourceType.SUBMISSION
_GRADE = ResourceType.GRADE


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _audit(request: Request, claims: Claims, action: str, resource: ResourceType, detail: str) -> None:
    request.app.state.audit.record(
        claims.account_id, action, resource, detail, origin_from_request(request), claims.username
    )


def _not_found(submission_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(
            code="submission_not_found",
            message=f"Submission {submission_id} not found.",
        ).model_dump(),
    )


def _load(request: Request, claims: Claims, submission_id: str, resource: ResourceType, action: Action) -> Submission:
    """Fetch a submission and apply the ownership rule for submitters."""
    store: SubmissionStore = request.app.state.submission_store
    sub = store.get(submission_id)
    if sub is None:
        raise _not_found(submission_id)
    if claims.role == Role.SUBMITTER and sub.owner_id != claims.account_id:
        raise deny(request, claims, resource, action, f"submission {submission_id} belongs to another account")
    return sub


def _unseal(request: Request, claims: Claims, sealed: SealedContent, resource: ResourceType, label: str) -> bytes:
    """Decrypt and verify, auditing either failure before it propagates."""
    protector: ContentProtector = request.app.state.protector
    try:
        return protector.unseal(sealed)
    except DecryptionFailed as exc:
        _audit(request, claims, f"{resource.value}.decrypt_failed", resource, f"{label}: {exc.detail}")
        raise
    except SignatureMismatch:
        _audit(request, claims, f"{resource.value}.integrity_failed", resource, f"{label}: signature mismatch")
        raise


def _grade_response(sub: Submission, grade: str, feedback: str) -> GradeResponse:
    return GradeResponse(
        submission_id=sub.id,
        grade=grade,
        feedback=feedback,
        graded_by=sub.graded_by,
        graded_at=sub.graded_at,
    )


def _content_disposition(filename: str) -> str:
    """attachment header with an ASCII fallback name plus the RFC 5987 UTF-8 form."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _seal_grade(request: Request, body: GradeRequest) -> SealedContent:
    protector: ContentProtector = request.app.state.protector
    document = json.dumps({"grade": body.grade, "feedback": body.feedback}, sort_keys=True)
    return protector.seal(document)


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


@router.post("/submissions", response_model=SubmissionSummary, status_code=201)
def create_submission(
    request: Request,
    body: SubmissionCreate,
    claims: Claims = Depends(require_permission(_SUBMISSION, Action.CREATE)),
) -> SubmissionSummary:
    """Encrypt and sign the content, then store it. Plaintext is never persisted."""
    protector: ContentProtector = request.app.state.protector
    store: SubmissionStore = request.app.state.submission_store
    sealed = protector.seal(body.content)
    sub = Submission(
        owner_id=claims.account_id,
        owner_name=claims.username,
        filename=body.filename,
        content_type=body.content_type,
        is_binary=body.is_binary,
        encrypted_content=sealed.ciphertext,
        signature=sealed.signature,
    )
    sub_id = store.create(sub)
    _audit(request, claims, "submission.create", _SUBMISSION, f"Uploaded {body.filename!r} as {sub_id}")
    return SubmissionSummary.from_submission(store.get(sub_id))


@router.get("/submissions", response_model=list[SubmissionSummary])
def list_submissions(
    request: Request,
    claims: Claims = Depends(require_permission(_SUBMISSION, Action.READ)),
) -> list[SubmissionSummary]:
    """Submitters see their own submissions; reviewers and auditors see all."""
    store: SubmissionStore = request.app.state.submission_store
    owner_id = claims.account_id if claims.role == Role.SUBMITTER else None
    return [SubmissionSummary.from_submission(s) for s in store.list_submissions(owner_id=owner_id)]


@router.get("/submissions/{submission_id}", response_model=SubmissionSummary)
def get_submission(
    request: Request,
    submission_id: str,
    claims: Claims = Depends(require_permission(_SUBMISSION, Action.READ)),
) -> SubmissionSummary:
    return SubmissionSummary.from_submission(_load(request, claims, submission_id, _SUBMISSION, Action.READ))


@router.get("/submissions/{submission_id}/content", response_model=SubmissionContentResponse)
def get_submission_content(
    request: Request,
    submission_id: str,
    claims: Claims = Depends(require_permission(_SUBMISSION, Action.READ)),
) -> SubmissionContentResponse:
    """Return the decrypted content. Reviewers only; the signature must verify."""
    sub = _load(request, claims, submission_id, _SUBMISSION, Action.READ)
    if claims.role != Role.REVIEWER:
        raise deny(request, claims, _SUBMISSION, Action.READ, "decrypted content is restricted to reviewers")
    plaintext = _unseal(
        request, claims, SealedContent(sub.encrypted_content, sub.signature), _SUBMISSION, f"submission {sub.id}"
    )
    _audit(request, claims, "submission.read_content", _SUBMISSION, f"Decrypted {sub.filename!r} ({sub.id})")
    return SubmissionContentResponse(
        id=sub.id,
        filename=sub.filename,
        content_type=sub.content_type,
        is_binary=sub.is_binary,
        content=plaintext.decode("utf-8"),
        signature_valid=True,
    )


@router.get("/submissions/{submission_id}/verify", response_model=IntegrityResponse)
def verify_submission(
    request: Request,
    submission_id: str,
    claims: Claims = Depends(require_permission(_SUBMISSION, Action.READ)),
) -> IntegrityResponse:
    """Check the stored signature against the decrypted content without returning it."""
    protector: ContentProtector = request.app.state.protector
    sub = _load(request, claims, submission_id, _SUBMISSION, Action.READ)
    try:
        plaintext = protector.decrypt(sub.encrypted_content)
    except DecryptionFailed as exc:
        _audit(request, claims, "submission.decrypt_failed", _SUBMISSION, f"submission {sub.id}: {exc.detail}")
        raise
    valid = protector.verify_signature(plaintext, sub.signature)
    _audit(
        request,
        claims,
        "submission.verify" if valid else "submission.integrity_failed",
        _SUBMISSION,
        f"submission {sub.id}: signature {'valid' if valid else 'MISMATCH'}",
    )
    return IntegrityResponse(id=sub.id, signature_valid=valid)


@router.get("/submissions/{submission_id}/download", response_class=Response)
def download_submission(
    request: Request,
    submission_id: str,
    claims: Claims = Depends(require_permission(_SUBMISSION, Action.READ)),
) -> Response:
    """Return the original file as an attachment. Reviewers only; the signature must verify.

    Binary submissions are base64-decoded back to the uploaded bytes.
    """
    sub = _load(request, claims, submission_id, _SUBMISSION, Action.READ)
    if claims.role != Role.REVIEWER:
        raise deny(request, claims, _SUBMISSION, Action.READ, "file download is restricted to reviewers")
    plaintext = _unseal(
        request, claims, SealedContent(sub.encrypted_content, sub.signature), _SUBMISSION, f"submission {sub.id}"
    )
    body = base64.b64decode(plaintext) if sub.is_binary else plaintext
    _audit(request, claims, "submission.download", _SUBMISSION, f"Downloaded {sub.filename!r} ({sub.id})")
    return Response(
        content=body,
        media_type=sub.content_type,
        headers={
            "Content-Disposition": _content_disposition(sub.filename),
            "X-Content-Type-Options": "nosniff",
            "Cache-Control": "no-store",
        },
    )


@router.delete("/submissions/{submission_id}", status_code=204)
def delete_submission(
    request: Request,
    submission_id: str,
    claims: Claims = Depends(require_permission(_SUBMISSION, Action.DELETE)),
) -> Response:
    store: SubmissionStore = request.app.state.submission_store
    if not store.delete(submission_id):
        raise _not_found(submission_id)
    _audit(request, claims, "submission.delete", _SUBMISSION, f"Deleted submission {submission_id}")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Grades
# ---------------------------------------------------------------------------


@router.post("/submissions/{submission_id}/grade", response_model=GradeResponse, status_code=201)
def create_grade(
    request: Request,
    submission_id: str,
    body: GradeRequest,
    claims: Claims = Depends(require_permission(_GRADE, Action.CREATE)),
) -> GradeResponse:
    """Grade an ungraded submission. A second create returns 409; use PATCH to regrade."""
    store: SubmissionStore = request.app.state.submission_store
    sub = _load(request, claims, submission_id, _GRADE, Action.CREATE)
    sealed = _seal_grade(request, body)
    if not store.set_grade(sub.id, sealed.ciphertext, sealed.signature, graded_by=claims.username, overwrite=False):
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(
                code="already_graded",
                message=f"Submission {submission_id} already has a grade.",
            ).model_dump(),
        )
    _audit(request, claims, "grade.create", _GRADE, f"Graded submission {sub.id}")
    updated = store.get(sub.id)
    return _grade_response(updated, body.grade, body.feedback)


@router.patch("/submissions/{submission_id}/grade", response_model=GradeResponse)
def update_grade(
    request: Request,
    submission_id: str,
    body: GradeRequest,
    claims: Claims = Depends(require_permission(_GRADE, Action.UPDATE)),
) -> GradeResponse:
    store: SubmissionStore = request.app.state.submission_store
    sub = _load(request, claims, submission_id, _GRADE, Action.UPDATE)
    if not sub.is_graded:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(
                code="grade_not_found",
                message=f"Submission {submission_id} has not been graded.",
            ).model_dump(),
        )
    sealed = _seal_grade(request, body)
    store.set_grade(sub.id, sealed.ciphertext, sealed.signature, graded_by=claims.username)
    _audit(request, claims, "grade.update", _GRADE, f"Regraded submission {sub.id}")
    updated = store.get(sub.id)
    return _grade_response(updated, body.grade, body.feedback)


@router.get("/submissions/{submission_id}/grade", response_model=GradeResponse)
def get_grade(
    request: Request,
    submission_id: str,
    claims: Claims = Depends(require_permission(_GRADE, Action.READ)),
) -> GradeResponse:
    """Return the decrypted grade. Submitters may only read grades on their own submissions."""
    sub = _load(request, claims, submission_id, _GRADE, Action.READ)
    if not sub.is_graded:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(
                code="grade_not_found",
                message=f"Submission {submission_id} has not been graded.",
            ).model_dump(),
        )
    document = _unseal(
        request, claims, SealedContent(sub.encrypted_grade, sub.grade_signature), _GRADE, f"grade on {sub.id}"
    )
    data = json.loads(document)
    return _grade_response(sub, data["grade"], data.get("feedback", ""))
