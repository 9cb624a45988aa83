"""Webhook signature verification for every gateway.

Each scheme is a pure function ``verify_*(payload, signature, secret) -> bool``
plus a small verifier class that binds the secret at construction. None of
them raise on malformed input: a signature that cannot be parsed simply does
not verify. A missing secret never verifies.
"""

import hashlib
import hmac
import json
from typing import Any, Mapping, Optional, Sequence

import stripe

# Fixed concatenation order for Paymob transaction callbacks. Changing this
# order breaks verification against the provider.
PAYMOB_HMAC_FIELDS: tuple[str, ...] = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order.id",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
)

# The browser redirect callback flattens the order id into ``order``.
PAYMOB_QUERY_HMAC_FIELDS: tuple[str, ...] = tuple(
    "order" if field == "order.id" else field for field in PAYMOB_HMAC_FIELDS
)


# ---------------------------------------------------------------------------
# Stripe: "t=<ts>,v1=<hex>" header, HMAC-SHA256 over "{ts}.{body}"
# ---------------------------------------------------------------------------


def verify_stripe_signature(
    payload: bytes,
    signature: Optional[str],
    secret: Optional[str],
    tolerance: Optional[int] = 300,
) -> bool:
    """Verify a Stripe-Signature header against the raw body."""
    if not secret or not signature:
        return False
    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        return False
    try:
        return stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
    except stripe.SignatureVerificationError:
        return False


# ---------------------------------------------------------------------------
# Paddle: "ts=<ts>;h1=<hex>" header, HMAC-SHA256 over "{ts}:{body}"
# ---------------------------------------------------------------------------


def _parse_paddle_header(signature: str) -> tuple[Optional[str], list[str]]:
    timestamp = None
    digests: list[str] = []
    for part in signature.split(";"):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "ts":
            timestamp = value
        elif key == "h1":
            digests.append(value)
    return timestamp, digests


def verify_paddle_signature(
    payload: bytes, signature: Optional[str], secret: Optional[str]
) -> bool:
    """Verify a Paddle-Signature header against the raw body."""
    if not secret or not signature:
        return False
    timestamp, digests = _parse_paddle_header(signature)
    if not timestamp or not digests:
        return False
    signed = timestamp.encode("utf-8") + b":" + payload
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, digest) for digest in digests)


# ---------------------------------------------------------------------------
# Paymob: HMAC-SHA512 over selected fields in a fixed order
# ---------------------------------------------------------------------------


def _lookup(values: Mapping[str, Any], dotted: str) -> Any:
    # Flat keys win so that query-string callbacks ("source_data.pan") resolve directly
    if dotted in values:
        return values[dotted]
    current: Any = values
    for part in dotted.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def paymob_signing_string(
    values: Mapping[str, Any], fields: Sequence[str] = PAYMOB_HMAC_FIELDS
) -> str:
    """Concatenate the signed Paymob fields in order."""
    return "".join(_render(_lookup(values, field)) for field in fields)


def compute_paymob_hmac(
    values: Mapping[str, Any], secret: str, fields: Sequence[str] = PAYMOB_HMAC_FIELDS
) -> str:
    """Hex HMAC-SHA512 of the Paymob signing string."""
    message = paymob_signing_string(values, fields).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha512).hexdigest()


def verify_paymob_hmac(
    values: Optional[Mapping[str, Any]],
    signature: Optional[str],
    secret: Optional[str],
    fields: Sequence[str] = PAYMOB_HMAC_FIELDS,
) -> bool:
    """Verify a Paymob HMAC over a transaction object or redirect query params."""
    if not secret or not signature or values is None:
        return False
    expected = compute_paymob_hmac(values, secret, fields)
    return hmac.compare_digest(expected, signature.lower())


def verify_paymob_signature(
    payload: bytes, signature: Optional[str], secret: Optional[str]
) -> bool:
    """Verify a Paymob transaction callback body.

    The signature comes from the ``hmac`` query parameter; when absent the
    body's own ``hmac`` field is used.
    """
    if not secret:
        return False
    try:
        body = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        return False
    if not isinstance(body, dict) or not isinstance(body.get("obj"), dict):
        return False
    return verify_paymob_hmac(body["obj"], signature or body.get("hmac"), secret)


# ---------------------------------------------------------------------------
# PayTabs: SHA-256 over server key + selected callback fields
# ---------------------------------------------------------------------------


def paytabs_signing_string(body: Mapping[str, Any], server_key: str) -> str:
    """Concatenate server key and signed PayTabs callback fields."""
    customer = body.get("customer_details") or {}
    result = body.get("payment_result") or {}
    return "".join(
        _render(v)
        for v in (
            server_key,
            body.get("tran_ref"),
            body.get("cart_id"),
            body.get("cart_amount"),
            body.get("cart_currency"),
            customer.get("email"),
            result.get("response_status"),
        )
    )


def compute_paytabs_signature(body: Mapping[str, Any], server_key: str) -> str:
    """Hex SHA-256 of the PayTabs signing string."""
    return hashlib.sha256(paytabs_signing_string(body, server_key).encode("utf-8")).hexdigest()


def verify_paytabs_signature(
    payload: bytes, signature: Optional[str], secret: Optional[str]
) -> bool:
    """Verify a PayTabs callback; the signature falls back to the body's ``signature`` field."""
    if not secret:
        return False
    try:
        body = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        return False
    if not isinstance(body, dict):
        return False
    provided = signature or body.get("signature")
    if not provided or not isinstance(provided, str):
        return False
    expected = compute_paytabs_signature(body, secret)
    return hmac.compare_digest(expected, provided.lower())


# ---------------------------------------------------------------------------
# Verifier objects (secret bound at construction)
# ---------------------------------------------------------------------------


class StripeSignatureVerifier:
    def __init__(self, secret: Optional[str], tolerance: Optional[int] = 300) -> None:
        self._secret = secret
        self._tolerance = tolerance

    @property
    def has_secret(self) -> bool:
        return bool(self._secret)

    def verify(self, payload: bytes, signature: Optional[str]) -> bool:
        return verify_stripe_signature(payload, signature, self._secret, self._tolerance)


class PaddleSignatureVerifier:
    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret

    @property
    def has_secret(self) -> bool:
        return bool(self._secret)

    def verify(self, payload: bytes, signature: Optional[str]) -> bool:
        return verify_paddle_signature(payload, signature, self._secret)


class PaymobSignatureVerifier:
    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret

    @property
    def has_secret(self) -> bool:
        return bool(self._secret)

    def verify(self, payload: bytes, signature: Optional[str]) -> bool:
        return verify_paymob_signature(payload, signature, self._secret)

    def verify_query(self, params: Mapping[str, Any]) -> bool:
        """Verify the browser redirect callback's query parameters."""
        return verify_paymob_hmac(
            params, params.get("hmac"), self._secret, PAYMOB_QUERY_HMAC_FIELDS
        )


class PayTabsSignatureVerifier:
    def __init__(self, server_key: Optional[str]) -> None:
        self._secret = server_key

    @property
    def has_secret(self) -> bool:
        return bool(self._secret)

    def verify(self, payload: bytes, signature: Optional[str]) -> bool:
        return verify_paytabs_signature(payload, signature, self._secret)
