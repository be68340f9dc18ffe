# flows/schedule_follow_up.py
"""
Follow-up scheduling flow.

Asks the model whether a sent email warrants a follow-up reminder. The model
only decides *whether*; the reminder time is always now + FOLLOW_UP_OFFSET_HOURS.

When the inference service cannot be used (no keys, every key over quota, or a
hard error) the flow still schedules a reminder at the same fixed offset, so
the caller never needs fallback logic of its own.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from core.config import FOLLOW_UP_OFFSET_HOURS
from core.dispatcher import DispatchRequest, KeyRotatingDispatcher
from flows.gemini_client import generate_structured

logger = logging.getLogger(__name__)

OPERATION = "schedule_follow_up"


class ScheduleFollowUpInput(BaseModel):
    email_content: str = Field(..., description="The content of the email.")
    email_category: str = Field(
        ...,
        description="The category of the email (e.g., internship application, job application, cold calling).",
    )
    sender_email: str = Field(..., description="The email address of the sender.")
    recipient_email: str = Field(..., description="The email address of the recipient.")
    subject: str = Field(..., description="The subject of the email.")


class ScheduleFollowUpOutput(BaseModel):
    follow_up_scheduled: bool = Field(..., description="Whether a follow-up reminder has been scheduled.")
    follow_up_date: Optional[str] = Field(
        None,
        description="The date and time the follow-up reminder is scheduled for, in ISO format.",
    )
    reason: Optional[str] = Field(None, description="The reason for scheduling or not scheduling a follow-up.")


SYSTEM_PROMPT = "You are an AI assistant that helps schedule follow-up reminders for emails."

PROMPT_TEMPLATE = """Based on the email content, determine if a follow-up is appropriate.
If it is, a reminder will be scheduled {offset_hours} hours after the email was sent.

Email Content: {email_content}
Email Category: {email_category}
Sender Email: {sender_email}
Recipient Email: {recipient_email}
Subject: {subject}

Consider all these factors and return follow_up_scheduled and a short reason."""


def follow_up_date(now: datetime, offset_hours: int = FOLLOW_UP_OFFSET_HOURS) -> str:
    """ISO timestamp of the reminder for an email sent at `now`."""
    return (now + timedelta(hours=offset_hours)).isoformat()


def fallback_decision(now: datetime, offset_hours: int = FOLLOW_UP_OFFSET_HOURS) -> ScheduleFollowUpOutput:
    """Default decision used when the model is unavailable. Depends only on `now`."""
    return ScheduleFollowUpOutput(
        follow_up_scheduled=True,
        follow_up_date=follow_up_date(now, offset_hours),
        reason=f"AI service unavailable. Used default {offset_hours}-hour follow-up schedule.",
    )


async def schedule_follow_up(
    data: ScheduleFollowUpInput,
    dispatcher: KeyRotatingDispatcher,
    now: Optional[datetime] = None,
    offset_hours: int = FOLLOW_UP_OFFSET_HOURS,
) -> ScheduleFollowUpOutput:
    """
    Decide and time the follow-up for one sent email.

    Never raises for inference failures: a fallback decision is returned and
    its `reason` names why the model was not used.
    """
    now = now or datetime.now(timezone.utc)

    async def _attempt(credential: str, payload: ScheduleFollowUpInput) -> ScheduleFollowUpOutput:
        decision = await generate_structured(
            credential,
            system=SYSTEM_PROMPT,
            prompt=PROMPT_TEMPLATE.format(offset_hours=offset_hours, **payload.model_dump()),
            schema=ScheduleFollowUpOutput,
        )
        # The model decides whether; the offset decides when.
        if decision.follow_up_scheduled:
            return decision.model_copy(update={"follow_up_date": follow_up_date(now, offset_hours)})
        return decision.model_copy(update={"follow_up_date": None})

    outcome = await dispatcher.dispatch(
        DispatchRequest(OPERATION, data),
        attempt=_attempt,
        fallback=lambda request: fallback_decision(now, offset_hours),
    )

    if outcome.is_fallback:
        logger.warning("Using fallback follow-up schedule", extra={"reason": outcome.reason})
        return outcome.result.model_copy(update={
            "reason": f"AI service unavailable ({outcome.reason}). "
                      f"Used default {offset_hours}-hour follow-up schedule.",
        })

    logger.info("Follow-up decided by AI", extra={
        "follow_up_scheduled": outcome.result.follow_up_scheduled,
        "attempts": outcome.attempts,
    })
    return outcome.result
