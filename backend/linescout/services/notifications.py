"""Outbound notifications: transactional email (SMTP) and Expo push.

Both transports are fire-and-forget.  Every function here logs failures
and returns False instead of raising, and every caller invokes them only
after its transaction has committed, so a broken SMTP server or a bad
push token can never undo a payment or a handoff.

SMTP runs through `smtplib` in the default thread executor; Expo push is
a single batched POST through httpx.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linescout.config import settings
from linescout.models.agent_profile import AgentDeviceToken
from linescout.models.handoff import Handoff
from linescout.models.reorder import ReorderRequest
from linescout.models.user import DeviceToken, User
from linescout.services.approval import AgentRecord, eligible_agents
from linescout.services.lifecycle import PaymentSummary

logger = logging.getLogger(__name__)

AGENT_PORTAL_URL = "https://linescout.sureimports.com/agents"


# ── Transports ───────────────────────────────────────────────

def _build_message(to: str, subject: str, lines: list[str]) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = settings.smtp_from
    msg["To"] = to
    msg["Subject"] = subject
    msg["Reply-To"] = settings.reply_to_email
    msg.set_content("\n\n".join(lines) + "\n\nLineScout by Sure Imports\n")
    return msg


def _smtp_send(msg: EmailMessage) -> None:
    if settings.smtp_port == 465:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=20) as smtp:
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_pass)
            smtp.send_message(msg)
    else:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=20) as smtp:
            smtp.starttls()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_pass)
            smtp.send_message(msg)


async def send_notice_email(to: str | None, subject: str, lines: list[str]) -> bool:
    """Send a plain-text notice. Returns True if SMTP accepted it."""
    if not to:
        return False
    if not settings.smtp_host:
        logger.info("SMTP not configured, skipping email to %s: %s", to, subject)
        return False

    msg = _build_message(to, subject, lines)
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, _smtp_send, msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Email to %s failed (%s): %s", to, subject, e)
        return False

    logger.info("Email sent to %s: %s", to, subject)
    return True


async def send_expo_push(
    tokens: list[str],
    title: str,
    body: str,
    data: dict | None = None,
) -> bool:
    """Send one push per Expo token in a single batch. Failures are swallowed."""
    tokens = [t for t in dict.fromkeys(tokens) if t]
    if not tokens:
        return False

    messages = [
        {"to": t, "sound": "default", "title": title, "body": body, "data": data or {}}
        for t in tokens
    ]
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.post(
                settings.expo_push_url,
                json=messages,
                headers={"Accept": "application/json"},
            )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Expo push to %d device(s) failed: %s", len(tokens), e)
        return False
    return True


# ── Recipients ───────────────────────────────────────────────

async def user_push_tokens(db: AsyncSession, user_id: str | None) -> list[str]:
    if not user_id:
        return []
    result = await db.execute(
        select(DeviceToken.token).where(
            DeviceToken.user_id == user_id,
            DeviceToken.is_active == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())


async def agent_push_tokens(db: AsyncSession, agent_ids: list[str]) -> list[str]:
    if not agent_ids:
        return []
    result = await db.execute(
        select(AgentDeviceToken.token).where(
            AgentDeviceToken.internal_user_id.in_(agent_ids),
            AgentDeviceToken.is_active == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())


def _wants_email(record: AgentRecord) -> bool:
    return bool(
        record.profile
        and record.profile.email
        and record.profile.email_notifications_enabled
    )


def _first_name(record: AgentRecord) -> str:
    if record.profile and record.profile.first_name:
        return record.profile.first_name.split(" ")[0]
    return "there"


# ── Fan-out ──────────────────────────────────────────────────

async def notify_new_handoff(db: AsyncSession, handoff: Handoff) -> None:
    """Tell every approved, active agent and the admin inbox about new work."""
    try:
        agents = await eligible_agents(db)
        title = "New project available"
        body = f"{handoff.token} is waiting to be claimed."
        data = {"type": "new_handoff", "handoff_id": handoff.id}

        await send_expo_push(
            await agent_push_tokens(db, [a.user.id for a in agents]), title, body, data
        )
        for agent in agents:
            if _wants_email(agent):
                await send_notice_email(
                    agent.profile.email,
                    f"New LineScout project: {handoff.token}",
                    [
                        f"Hi {_first_name(agent)},",
                        f"A new {handoff.handoff_type} project ({handoff.token}) is available to claim.",
                        f"Open the agent app to review it: {AGENT_PORTAL_URL}",
                    ],
                )
        await send_notice_email(
            settings.admin_notify_email,
            f"New paid handoff: {handoff.token}",
            [
                f"Handoff {handoff.token} was created and is pending.",
                f"Customer: {handoff.customer_name or '-'} <{handoff.email or '-'}>",
                f"Brief: {handoff.context or '-'}",
            ],
        )
    except Exception:
        logger.exception("New-handoff fan-out failed for %s", handoff.token)


async def notify_payment_receipt(
    db: AsyncSession,
    user: User | None,
    *,
    token: str,
    amount: float,
    currency: str,
    reference: str,
    handoff: Handoff | None = None,
) -> bool:
    """Email the payer a receipt for a verified Paystack payment.

    Returns whether SMTP accepted the email; the payment itself is
    already committed.
    """
    if user is None:
        return False
    try:
        first_name = (user.display_name or "").split(" ")[0]
        if handoff is not None:
            subject = "Payment Confirmed: Your LineScout Sourcing Project is Active"
            intro = (
                "Your payment has been confirmed. Your paid sourcing project is now "
                "active and your sourcing specialist will respond inside the paid chat."
            )
        elif token.startswith("BP-"):
            subject = "Payment Confirmed: Your LineScout Business Plan Token"
            intro = "Your payment has been confirmed. Use the token below to unlock your business plan."
        else:
            subject = "Payment Confirmed: Your LineScout Sourcing Token"
            intro = "Your payment has been confirmed. Use the token below to submit your sourcing brief."

        sent = await send_notice_email(
            user.email,
            subject,
            [
                f"Hi {first_name}," if first_name else "Hi there,",
                intro,
                f"Token: {token}\nAmount: {currency} {amount:,.2f}\nPaystack Reference: {reference}",
                "If you did not authorize this payment, reply to this email immediately "
                "and we will investigate.",
            ],
        )
        if handoff is not None:
            await send_expo_push(
                await user_push_tokens(db, user.id),
                "Payment confirmed",
                f"Your sourcing project {token} is active",
                {"type": "paid_chat", "handoff_id": handoff.id},
            )
        return sent
    except Exception:
        logger.exception("Payment receipt failed for %s", reference)
        return False


async def notify_payment_recorded(
    db: AsyncSession,
    handoff: Handoff,
    amount: float,
    summary: PaymentSummary,
) -> None:
    try:
        lines = [
            "Hello,",
            f"We received a payment of {summary.currency} {amount:,.2f} for project {handoff.token}.",
            f"Total paid: {summary.currency} {summary.total_paid:,.2f} "
            f"of {summary.currency} {summary.total_due:,.2f}.",
        ]
        if summary.balance > 0:
            lines.append(f"Outstanding balance: {summary.currency} {summary.balance:,.2f}.")
        else:
            lines.append("Your project is fully paid. Thank you.")

        await send_notice_email(handoff.email, f"Payment Received: {handoff.token}", lines)
        await send_expo_push(
            await user_push_tokens(db, handoff.user_id),
            "Payment received",
            f"{summary.currency} {amount:,.2f} recorded for {handoff.token}",
            {"type": "payment", "handoff_id": handoff.id},
        )
    except Exception:
        logger.exception("Payment notification failed for %s", handoff.token)


async def notify_reorder_created(
    db: AsyncSession,
    reorder: ReorderRequest,
    handoff: Handoff,
    agent: AgentRecord | None,
) -> None:
    try:
        await send_notice_email(
            handoff.email,
            f"Re-order received: {handoff.token}",
            [
                "Hello,",
                f"Your re-order payment was confirmed and project {handoff.token} has been opened.",
                "Your agent will reach out in the app shortly."
                if agent else
                "We are assigning an agent to your project and will update you shortly.",
            ],
        )
        await send_expo_push(
            await user_push_tokens(db, reorder.user_id),
            "Re-order confirmed",
            f"Project {handoff.token} has been opened.",
            {"type": "reorder", "handoff_id": handoff.id, "conversation_id": reorder.new_conversation_id},
        )

        if agent is not None:
            await _notify_agent_of_reorder(db, agent, handoff)
        else:
            await send_notice_email(
                settings.admin_notify_email,
                "Re-order request needs assignment",
                [
                    f"Re-order {reorder.id} for project {handoff.token} has no eligible agent.",
                    f"Source handoff: {reorder.source_handoff_id}",
                    f"Customer note: {reorder.user_note or '-'}",
                    "Assign an agent from the admin re-orders page.",
                ],
            )
    except Exception:
        logger.exception("Reorder fan-out failed for %s", reorder.id)


async def _notify_agent_of_reorder(
    db: AsyncSession, agent: AgentRecord, handoff: Handoff
) -> None:
    if _wants_email(agent):
        await send_notice_email(
            agent.profile.email,
            f"Re-order assigned to you: {handoff.token}",
            [
                f"Hi {_first_name(agent)},",
                f"A customer you served before has re-ordered. Project {handoff.token} is now assigned to you.",
                f"Open the agent app to continue: {AGENT_PORTAL_URL}",
            ],
        )
    await send_expo_push(
        await agent_push_tokens(db, [agent.user.id]),
        "Re-order assigned",
        f"{handoff.token} is assigned to you.",
        {"type": "reorder_assigned", "handoff_id": handoff.id},
    )


async def notify_reorder_assigned(
    db: AsyncSession,
    reorder: ReorderRequest,
    handoff: Handoff,
    agent: AgentRecord,
) -> None:
    try:
        await _notify_agent_of_reorder(db, agent, handoff)
        await send_expo_push(
            await user_push_tokens(db, reorder.user_id),
            "Agent assigned",
            f"{agent.display_name} is now handling {handoff.token}.",
            {"type": "reorder", "handoff_id": handoff.id},
        )
    except Exception:
        logger.exception("Reorder assignment fan-out failed for %s", reorder.id)


async def notify_agent_approval(
    record: AgentRecord, approved: bool, reason: str | None = None
) -> None:
    try:
        if approved:
            subject = "Your LineScout Agent Account Has Been Approved"
            lines = [
                f"Dear {_first_name(record)},",
                "Congratulations. Your agent account has been approved and you can now claim projects.",
                f"Sign in here: {AGENT_PORTAL_URL}",
            ]
        else:
            subject = "Update on your LineScout Agent Application"
            lines = [
                f"Dear {_first_name(record)},",
                "We are unable to approve your agent account at this time.",
            ]
            if reason:
                lines.append(f"Reason: {reason}")
        await send_notice_email(record.email, subject, lines)
    except Exception:
        logger.exception("Approval email failed for agent %s", record.user.id)


async def send_customer_otp(email: str, code: str) -> bool:
    return await send_notice_email(
        email,
        "Your LineScout sign-in code",
        [
            f"Your sign-in code is {code}.",
            f"It expires in {settings.otp_expiry_seconds // 60} minutes. "
            "If you did not request it, ignore this email.",
        ],
    )
