"""One-time codes with expiry, cooldown and attempt limits.

Two channels share the same store:
  - customers sign in with a code sent to their email
    (delivered by `linescout.services.notifications`)
  - agents verify their China phone number with a code sent by
    Twilio SMS (`send_sms_otp`)

Storage keys are namespaced by the caller ("email:a@b.com",
"phone:<agent_id>:+86...").  The store is in-memory per process; swap
`_otp_store` for a Redis hash with TTL when running more than one worker.
"""

import random
import string
import time

from linescout.config import settings

# {key: {"code": "123456", "created_at": timestamp, "attempts": int}}
_otp_store: dict[str, dict] = {}

OTP_LENGTH = 6
OTP_EXPIRY_SECONDS = settings.otp_expiry_seconds
OTP_MAX_ATTEMPTS = 5
OTP_COOLDOWN_SECONDS = 60  # min seconds between sends


class OTPCooldownError(Exception):
    """Raised when an OTP is requested too soon after the previous one."""
    pass


def generate_otp() -> str:
    return "".join(random.choices(string.digits, k=OTP_LENGTH))


def issue_otp(key: str) -> str:
    """Generate and store a code for `key`. Returns the code for delivery."""
    now = time.time()

    existing = _otp_store.get(key)
    if existing and (now - existing["created_at"]) < OTP_COOLDOWN_SECONDS:
        remaining = int(OTP_COOLDOWN_SECONDS - (now - existing["created_at"]))
        raise OTPCooldownError(f"Wait {remaining}s before requesting another code")

    code = generate_otp()
    _otp_store[key] = {
        "code": code,
        "created_at": now,
        "attempts": 0,
    }
    return code


def send_sms_otp(phone: str, code: str) -> bool:
    """Send a verification code by SMS. Returns False when Twilio is not configured."""
    if not settings.twilio_account_sid:
        return False

    from twilio.rest import Client
    client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
    client.messages.create(
        body=f"Your LineScout verification code is: {code}",
        from_=settings.twilio_from_number,
        to=phone,
    )
    return True


def verify_otp(key: str, code: str) -> bool:
    """Verify a code. Returns True on success, False on failure.

    Enforces:
      - Code expiry (configurable, default 10 min)
      - Max verification attempts (brute-force protection)
    """
    entry = _otp_store.get(key)
    if not entry:
        return False

    now = time.time()

    if (now - entry["created_at"]) > OTP_EXPIRY_SECONDS:
        _otp_store.pop(key, None)
        return False

    if entry["attempts"] >= OTP_MAX_ATTEMPTS:
        _otp_store.pop(key, None)
        return False

    entry["attempts"] += 1

    if entry["code"] == code.strip():
        _otp_store.pop(key, None)  # single use
        return True

    return False
