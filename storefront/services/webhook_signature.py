"""MercadoPago webhook signature verification.

Deliveries carry ``x-signature: ts=<epoch>,v1=<hex>`` and ``x-request-id``.
The provider signs the manifest ``id:{data.id};request-id:{x-request-id};ts:{ts};``
with HMAC-SHA256 using the webhook secret. Verification recomputes that
digest, compares it in constant time and rejects timestamps outside the
allowed age so captured deliveries cannot be replayed later.

Every function here resolves to a value; malformed input never raises.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Callable

from storefront.core.config import settings
from storefront.core.logging import log_security_event

DEFAULT_MAX_AGE_SECONDS = 15 * 60

# Epoch values above this are milliseconds (10^12 ms is September 2001).
_MILLISECONDS_THRESHOLD = 10**12


@dataclass(frozen=True)
class ParsedSignature:
    """Components of a well-formed signature header."""

    ts: str
    signature_hex: str

    @property
    def timestamp_seconds(self) -> float:
        value = int(self.ts)
        return value / 1000 if value >= _MILLISECONDS_THRESHOLD else float(value)


@dataclass(frozen=True)
class SignatureParseError:
    """Why a signature header could not be parsed."""

    reason: str


SignatureParseResult = ParsedSignature | SignatureParseError


def parse_signature_header(header: str | None) -> SignatureParseResult:
    """Parse ``ts=...,v1=...`` into its components.

    Parts may be separated by optional whitespace and appear in any order;
    unknown parts are ignored.

    Args:
        header: Raw x-signature header value.

    Returns:
        ParsedSignature on success, SignatureParseError otherwise.
    """
    if not header or not header.strip():
        return SignatureParseError("empty_header")

    parts: dict[str, str] = {}
    for part in header.split(","):
        name, sep, value = part.partition("=")
        if not sep:
            continue
        parts[name.strip().lower()] = value.strip()

    ts = parts.get("ts")
    signature_hex = parts.get("v1")

    if not ts:
        return SignatureParseError("missing_timestamp")
    if not ts.isascii() or not ts.isdigit():
        return SignatureParseError("invalid_timestamp")
    if not signature_hex:
        return SignatureParseError("missing_signature")

    return ParsedSignature(ts=ts, signature_hex=signature_hex)


def build_manifest(resource_id: str, request_id: str, ts: str) -> str:
    """Build the canonical string the provider signs."""
    return f"id:{resource_id};request-id:{request_id};ts:{ts};"


def compute_signature(secret: str, manifest: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``manifest``."""
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def _fingerprint(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


class WebhookSignatureVerifier:
    """Validates webhook signatures against a shared secret."""

    def __init__(
        self,
        secret: str | None,
        *,
        max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret or None
        self._max_age = max_age_seconds
        self._clock = clock

    @property
    def configured(self) -> bool:
        return self._secret is not None

    def validate(self, signature_header: str, request_id: str, resource_id: str) -> bool:
        """Check that a delivery was signed by the provider recently.

        Args:
            signature_header: Raw x-signature header.
            request_id: Raw x-request-id header.
            resource_id: ``data.id`` of the notification.

        Returns:
            True only when every check passes.
        """
        if not signature_header or not request_id or not resource_id:
            return self._reject(
                "missing_input",
                request_id,
                has_signature=bool(signature_header),
                has_request_id=bool(request_id),
                has_resource_id=bool(resource_id),
            )

        if self._secret is None:
            return self._reject("secret_not_configured", request_id)

        parsed = parse_signature_header(signature_header)
        if isinstance(parsed, SignatureParseError):
            return self._reject(parsed.reason, request_id)

        age_seconds = self._clock() - parsed.timestamp_seconds
        if age_seconds > self._max_age:
            return self._reject("timestamp_expired", request_id, age_s=int(age_seconds))
        if age_seconds < -self._max_age:
            return self._reject("timestamp_in_future", request_id, age_s=int(age_seconds))

        manifest = build_manifest(resource_id, request_id, parsed.ts)
        expected = compute_signature(self._secret, manifest)

        if not hmac.compare_digest(
            expected.encode("utf-8"),
            parsed.signature_hex.encode("utf-8"),
        ):
            return self._reject(
                "signature_mismatch",
                request_id,
                signature_length=len(parsed.signature_hex),
            )

        return True

    def _reject(self, reason: str, request_id: str | None, **fields: object) -> bool:
        log_security_event(
            "webhook.signature_rejected",
            reason=reason,
            provider_request_fp=_fingerprint(request_id) if request_id else None,
            **fields,
        )
        return False


def validate_webhook_signature(signature_header: str, request_id: str, resource_id: str) -> bool:
    """Validate a delivery using the configured payment settings."""
    verifier = WebhookSignatureVerifier(
        settings.payments.webhook_secret,
        max_age_seconds=settings.payments.webhook_max_age_seconds,
    )
    return verifier.validate(signature_header, request_id, resource_id)
