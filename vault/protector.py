"""
vault/protector.py -- Encryption and integrity signatures for submitted content.

Security design decisions:
  Encryption: AES-256-GCM from the cryptography package. Every encrypt() call
       draws a fresh 96-bit nonce from os.urandom, so identical plaintexts
       under the same key never produce the same blob. The nonce is not
       secret and travels with the ciphertext.

  Wire format: "<nonce-hex>:<ciphertext-hex>". The ciphertext part includes
       the 16-byte GCM tag. The format round-trips exactly through a TEXT
       column.

  Signatures: HMAC-SHA256 over the ORIGINAL plaintext bytes, keyed with a
       signing key that is independent of the encryption key. A valid
       signature proves the content is unchanged since signing, separately
       from confidentiality.

  No plaintext fallback: decrypt() raises DecryptionFailed for anything it
       cannot parse or authenticate. Undecryptable data is never returned as
       if it were already plaintext. Legacy plaintext records are converted
       once with `python main.py migrate-legacy`.

Layer rule: vault/ imports from core/ only.
"""

from __future__ import annotations

import hashlib
import hmac
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.errors import DecryptionFailed, SignatureMismatch

NONCE_BYTES = 12
KEY_BYTES = 32
_SEPARATOR = ":"


def _to_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


@dataclass(frozen=True)
class SealedContent:
    """Ciphertext plus its signature. Persisted together or not at all."""

    ciphertext: str
    signature: str


class ContentProtector:
    def __init__(self, encryption_key: bytes, signing_key: bytes) -> None:
        if len(encryption_key) != KEY_BYTES:
            raise ValueError(f"encryption_key must be {KEY_BYTES} bytes")
        if not signing_key:
            raise ValueError("signing_key must not be empty")
        if hmac.compare_digest(encryption_key, signing_key):
            raise ValueError("signing_key must differ from encryption_key")
        self._aead = AESGCM(encryption_key)
        self._signing_key = signing_key

    # ------------------------------------------------------------------
    # Confidentiality
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: bytes | str) -> str:
        nonce = os.urandom(NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, _to_bytes(plaintext), None)
        return f"{nonce.hex()}{_SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, blob: str) -> bytes:
        """Return the original plaintext bytes. Raises DecryptionFailed."""
        if not isinstance(blob, str) or blob.count(_SEPARATOR) != 1:
            raise DecryptionFailed(detail="malformed blob")
        nonce_hex, ciphertext_hex = blob.split(_SEPARATOR)
        try:
            nonce = bytes.fromhex(nonce_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError as exc:
            raise DecryptionFailed(detail="blob is not hex encoded") from exc
        if len(nonce) != NONCE_BYTES:
            raise DecryptionFailed(detail="bad nonce length")
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            raise DecryptionFailed(detail="authentication failed") from exc

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def sign(self, plaintext: bytes | str) -> str:
        return hmac.new(self._signing_key, _to_bytes(plaintext), hashlib.sha256).hexdigest()

    def verify_signature(self, plaintext: bytes | str, signature: str) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(plaintext), signature.strip().lower())

    # ------------------------------------------------------------------
    # Combined write/read paths
    # ------------------------------------------------------------------

    def seal(self, plaintext: bytes | str) -> SealedContent:
        """Encrypt-then-sign. Either both values are produced or an exception propagates."""
        data = _to_bytes(plaintext)
        return SealedContent(ciphertext=self.encrypt(data), signature=self.sign(data))

    def unseal(self, sealed: SealedContent, verify: bool = True) -> bytes:
        """Decrypt, and by default check the signature over the recovered plaintext.

        Raises DecryptionFailed or SignatureMismatch.
        """
        plaintext = self.decrypt(sealed.ciphertext)
        if verify and not self.verify_signature(plaintext, sealed.signature):
            raise SignatureMismatch()
        return plaintext
