"""
vault/models.py -- Domain dataclasses for protected submissions.

Pure data containers. Encryption happens in vault/protector.py, persistence in
vault/store.py, and authorization in the api/ layer.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Submission:
    """Encrypted, signed submission content plus its metadata.

    encrypted_content is "<nonce-hex>:<ciphertext-hex>"; signature is the hex
    HMAC over the original plaintext. For binary uploads the plaintext is the
    base64 text the client sent, and is_binary is True.

    The grade fields are layered the same way: encrypted_grade holds a sealed
    JSON document {"grade": ..., "feedback": ...} and grade_signature signs it.
    Both are None until a reviewer grades the submission.

    id is None before the record is written to the database.
    """

    owner_id: int
    owner_name: str
    filename: str
    encrypted_content: str
    signature: str
    content_type: str = "text/plain"
    is_binary: bool = False
    encrypted_grade: str | None = None
    grade_signature: str | None = None
    graded_by: str | None = None
    graded_at: str | None = None
    submitted_at: str = ""  # ISO 8601, set by store on insert
    id: str | None = None  # uuid4 hex

    @property
    def is_graded(self) -> bool:
        return self.encrypted_grade is not None
