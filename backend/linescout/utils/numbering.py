"""Receipt and quote token generation.

Formats:
  sourcing receipt:       SRC-XXXXXX-XXXXX
  business plan receipt:  BP-XXXXXX-XXXXX
  quote link:             Q-XXXXXXXXXX

Tokens are random (uppercase letters and digits without 0/O/1/I) and are
checked against the table before use; the unique index still guards a
concurrent collision.
"""

import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.models.handoff import Handoff
from linescout.models.quote import Quote
from linescout.models.token import PaymentToken

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

TOKEN_PREFIXES = {
    "sourcing": "SRC",
    "business_plan": "BP",
}


def _random_chunk(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def format_receipt_token(token_type: str) -> str:
    prefix = TOKEN_PREFIXES[token_type]
    return f"{prefix}-{_random_chunk(6)}-{_random_chunk(5)}"


async def generate_receipt_token(db: AsyncSession, token_type: str) -> str:
    """Return a receipt token not yet used by any token or handoff."""
    while True:
        candidate = format_receipt_token(token_type)
        taken = await db.execute(
            select(PaymentToken.id).where(PaymentToken.token == candidate)
        )
        if taken.first():
            continue
        taken = await db.execute(select(Handoff.id).where(Handoff.token == candidate))
        if taken.first():
            continue
        return candidate


async def generate_quote_token(db: AsyncSession) -> str:
    while True:
        candidate = f"Q-{_random_chunk(10)}"
        taken = await db.execute(select(Quote.id).where(Quote.token == candidate))
        if not taken.first():
            return candidate
