"""Paystack REST client.

Endpoints used:
    GET /transaction/verify/{reference}          confirm a customer payment
    GET /bank/resolve?account_number&bank_code   confirm an agent payout account

Webhooks are authenticated with `verify_signature()` (HMAC-SHA512 of the
raw body, keyed with the secret key).
"""

import hashlib
import hmac
import logging

import httpx

from linescout.config import settings
from linescout.middleware.exceptions import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


def _headers() -> dict:
    if not settings.paystack_secret_key:
        raise ExternalServiceError("Paystack", "secret key is not configured")
    return {
        "Authorization": f"Bearer {settings.paystack_secret_key}",
        "Accept": "application/json",
    }


async def _get(path: str, params: dict | None = None) -> dict:
    headers = _headers()
    try:
        async with httpx.AsyncClient(
            base_url=settings.paystack_base_url,
            timeout=settings.paystack_timeout_seconds,
        ) as client:
            resp = await client.get(path, params=params, headers=headers)
    except httpx.HTTPError as e:
        logger.error("Paystack request %s failed: %s", path, e)
        raise ExternalServiceError("Paystack", "request failed, please try again")

    try:
        payload = resp.json()
    except ValueError:
        logger.error("Paystack %s returned non-JSON (HTTP %s)", path, resp.status_code)
        raise ExternalServiceError("Paystack", "unexpected response")

    if resp.status_code >= 500:
        raise ExternalServiceError("Paystack", payload.get("message") or "service unavailable")
    if resp.status_code >= 400 or not payload.get("status"):
        raise ValidationError(
            payload.get("message") or "Paystack rejected the request",
            error_code="PAYSTACK_REJECTED",
        )
    return payload.get("data") or {}


async def verify_transaction(reference: str) -> dict:
    """Return the transaction `data` object for `reference`."""
    reference = (reference or "").strip()
    if not reference:
        raise ValidationError("Payment reference is required")
    return await _get(f"/transaction/verify/{reference}")


async def resolve_account(account_number: str, bank_code: str) -> dict:
    """Return {account_number, account_name, bank_id} for a Nigerian bank account."""
    return await _get(
        "/bank/resolve",
        params={"account_number": account_number, "bank_code": bank_code},
    )


def verify_signature(raw_body: bytes, signature: str) -> bool:
    if not settings.paystack_secret_key or not signature:
        return False
    expected = hmac.new(
        settings.paystack_secret_key.encode("utf-8"), raw_body, hashlib.sha512
    ).hexdigest()
    return hmac.compare_digest(expected, signature)
