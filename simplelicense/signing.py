"""RSA signing and verification of license documents.

Profile:
- Signing input is the canonical bytes of the document (see
  :mod:`simplelicense.canonical`) with ``Signature`` and any unsigned field
  names removed.
- SHA-256 digest, RSA with either PSS (MGF1/SHA-256, salt length equal to the
  digest length) or PKCS#1 v1.5 padding. The scheme is an explicit parameter on
  both sides; nothing is negotiated.
- The signature is stored base64 encoded (standard alphabet, padded) in the
  ``Signature`` field.

Signing writes the signature only after every step has succeeded. Verification
never writes to the document and never raises for an expected failure; it
returns a :class:`VerificationResult` whose ``reason`` tells the failure modes
apart. A tampered document and a wrong public key report the same reason.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Iterable, Iterator, Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.padding import AsymmetricPadding

from simplelicense.canonical import encode, exclusion_set
from simplelicense.core import (
    SIGNATURE_FIELD,
    CanonicalizationError,
    KeyFormatError,
    LicenseFormatError,
    LicenseValidationError,
    SignatureFormatError,
    SigningError,
)
from simplelicense.document import LicenseDocument
from simplelicense.fields import FieldRegistry
from simplelicense.keys import MIN_KEY_SIZE, PemInput, load_private_key, load_public_key

logger = logging.getLogger(__name__)

REASON_NULL_DOCUMENT = "License is null"
REASON_SIGNATURE_MISSING = "Signature missing or empty"
REASON_SIGNATURE_NOT_BASE64 = "Signature is not valid Base64"
REASON_MISMATCH = "Signature verification failed"
REASON_EMPTY_JSON = "Empty JSON"


class PaddingScheme(str, Enum):
    PSS = "pss"
    PKCS1 = "pkcs1"

    @classmethod
    def parse(cls, value: Union[str, "PaddingScheme", None]) -> "PaddingScheme":
        """Accept an enum member or a name such as ``pss``, ``pkcs1`` or ``PKCS1v15``."""
        if value is None:
            return cls.PSS
        if isinstance(value, PaddingScheme):
            return value
        norm = str(value).strip().lower().replace("-", "").replace("_", "")
        if norm == "pss":
            return cls.PSS
        if norm in ("pkcs1", "pkcs1v15", "pkcs1v1.5"):
            return cls.PKCS1
        raise ValueError(f"unknown padding scheme: {value!r} (expected 'pss' or 'pkcs1')")

    def padding(self) -> AsymmetricPadding:
        if self is PaddingScheme.PSS:
            return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.DIGEST_LENGTH)
        return padding.PKCS1v15()


@dataclass(frozen=True)
class VerificationResult:
    """(valid, reason) pair; ``reason`` is None exactly when valid."""

    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid

    def __iter__(self) -> Iterator[Any]:
        return iter((self.valid, self.reason))


def decode_signature(text: Any) -> bytes:
    """Strictly decode a stored base64 signature."""
    if not isinstance(text, str) or not text.strip():
        raise SignatureFormatError(REASON_SIGNATURE_MISSING)
    try:
        raw = base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SignatureFormatError(REASON_SIGNATURE_NOT_BASE64) from exc
    if not raw:
        raise SignatureFormatError(REASON_SIGNATURE_MISSING)
    return raw


class LicenseSigner:
    """Signs license documents with an RSA private key.

    ``unsigned_fields`` are left out of the signed bytes in addition to
    ``Signature``; the verifier must be given the same set.
    """

    def __init__(
        self,
        private_key_pem: PemInput,
        padding_scheme: Union[PaddingScheme, str] = PaddingScheme.PSS,
        unsigned_fields: Optional[Iterable[str]] = None,
        *,
        min_key_size: int = MIN_KEY_SIZE,
    ) -> None:
        try:
            self._key = load_private_key(private_key_pem, min_key_size=min_key_size)
        except KeyFormatError as exc:
            raise SigningError(f"cannot load signing key: {exc}") from exc
        self.padding_scheme = PaddingScheme.parse(padding_scheme)
        self.excluded: FrozenSet[str] = exclusion_set(unsigned_fields)

    def signature_for(self, document: LicenseDocument) -> str:
        """Compute the base64 signature without touching ``document``."""
        try:
            payload = encode(document, self.excluded)
        except CanonicalizationError as exc:
            raise SigningError(f"Canonicalization failed: {exc}") from exc
        logger.debug("signing %d canonical bytes with %s padding", len(payload), self.padding_scheme.value)
        try:
            sig = self._key.sign(payload, self.padding_scheme.padding(), hashes.SHA256())
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise SigningError(f"RSA signing error: {exc}") from exc
        return base64.b64encode(sig).decode("ascii")

    def sign(self, document: LicenseDocument) -> LicenseDocument:
        """Sign ``document`` in place and return it."""
        if document is None:
            raise TypeError("document must not be None")
        signature = self.signature_for(document)
        result = document.set_field(SIGNATURE_FIELD, signature)
        if not result.ok:
            raise SigningError(f"could not store signature: {result.error}")
        logger.info("signed license %s", document.get("LicenseId"))
        return document


class LicenseVerifier:
    """Verifies license signatures with an RSA public key."""

    def __init__(
        self,
        public_key_pem: PemInput,
        padding_scheme: Union[PaddingScheme, str] = PaddingScheme.PSS,
        unsigned_fields: Optional[Iterable[str]] = None,
        *,
        min_key_size: int = MIN_KEY_SIZE,
    ) -> None:
        if public_key_pem is None:
            raise TypeError("public_key_pem must not be None")
        self._public_key_pem = public_key_pem
        self.min_key_size = min_key_size
        self.padding_scheme = PaddingScheme.parse(padding_scheme)
        self.excluded: FrozenSet[str] = exclusion_set(unsigned_fields)

    def verify(self, document: Optional[LicenseDocument]) -> VerificationResult:
        if document is None:
            return VerificationResult(False, REASON_NULL_DOCUMENT)

        try:
            raw_sig = decode_signature(document.get(SIGNATURE_FIELD))
        except SignatureFormatError as exc:
            return VerificationResult(False, str(exc))

        try:
            payload = encode(document, self.excluded)
        except CanonicalizationError as exc:
            return VerificationResult(False, f"Canonicalization failed: {exc}")

        try:
            key = load_public_key(self._public_key_pem, min_key_size=self.min_key_size)
            key.verify(raw_sig, payload, self.padding_scheme.padding(), hashes.SHA256())
        except InvalidSignature:
            logger.warning("signature mismatch for license %s", document.get("LicenseId"))
            return VerificationResult(False, REASON_MISMATCH)
        except (KeyFormatError, ValueError, TypeError, UnsupportedAlgorithm) as exc:
            return VerificationResult(False, f"RSA verification error: {exc}")

        logger.debug("verified %d canonical bytes with %s padding", len(payload), self.padding_scheme.value)
        return VerificationResult(True, None)

    def verify_json(self, text: Optional[str], registry: Optional[FieldRegistry] = None) -> VerificationResult:
        """Parse untrusted wire JSON and verify it."""
        if text is None or not text.strip():
            return VerificationResult(False, REASON_EMPTY_JSON)
        try:
            document = LicenseDocument.from_wire_json(text, registry)
        except LicenseFormatError as exc:
            return VerificationResult(False, f"Invalid JSON: {exc}")
        except LicenseValidationError as exc:
            return VerificationResult(False, f"License validation failed: {exc}")
        return self.verify(document)


def sign_document(
    document: LicenseDocument,
    private_key_pem: PemInput,
    padding_scheme: Union[PaddingScheme, str] = PaddingScheme.PSS,
    unsigned_fields: Optional[Iterable[str]] = None,
) -> LicenseDocument:
    return LicenseSigner(private_key_pem, padding_scheme, unsigned_fields).sign(document)


def verify_document(
    document: Optional[LicenseDocument],
    public_key_pem: PemInput,
    padding_scheme: Union[PaddingScheme, str] = PaddingScheme.PSS,
    unsigned_fields: Optional[Iterable[str]] = None,
) -> VerificationResult:
    return LicenseVerifier(public_key_pem, padding_scheme, unsigned_fields).verify(document)


def verify_document_json(
    text: Optional[str],
    public_key_pem: PemInput,
    padding_scheme: Union[PaddingScheme, str] = PaddingScheme.PSS,
    unsigned_fields: Optional[Iterable[str]] = None,
    registry: Optional[FieldRegistry] = None,
) -> VerificationResult:
    return LicenseVerifier(public_key_pem, padding_scheme, unsigned_fields).verify_json(text, registry)
