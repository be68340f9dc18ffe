# flows/suggest_follow_up.py
"""
Follow-up message suggestion flow.

Drafts a brief follow-up for a previously sent email. There is no meaningful
default message, so when the service is unavailable an apology is returned
and the dispatcher's reason is surfaced as `notice` for display.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field

from core.dispatcher import DispatchRequest, KeyRotatingDispatcher
from flows.gemini_client import generate_structured

logger = logging.getLogger(__name__)

OPERATION = "suggest_follow_up"

APOLOGY_MESSAGE = "Sorry, we couldn't generate a suggestion at this time."


class SuggestFollowUpInput(BaseModel):
    original_email: str = Field(..., description="The content of the original email sent.")
    email_category: str = Field(
        "general",
        description="The category of the email (e.g., internship, job, cold-outreach).",
    )


class SuggestFollowUpOutput(BaseModel):
    follow_up_suggestion: str = Field(..., description="The AI-suggested follow-up email message.")


class FollowUpSuggestion(BaseModel):
    follow_up_suggestion: str
    notice: Optional[str] = None
    generated: bool = True


SYSTEM_PROMPT = "You are an AI assistant that helps users draft follow-up emails."

PROMPT_TEMPLATE = """Given the original email and its category, suggest a brief, polite, and professional follow-up email message.
The follow-up email should remind the recipient of the original email and reiterate the key points or request.
The tone of the follow-up should be tailored to the email category.

Original Email:
{original_email}

Email Category:
{email_category}"""


async def suggest_follow_up_message(
    data: SuggestFollowUpInput,
    dispatcher: KeyRotatingDispatcher,
) -> FollowUpSuggestion:
    async def _attempt(credential: str, payload: SuggestFollowUpInput) -> SuggestFollowUpOutput:
        return await generate_structured(
            credential,
            system=SYSTEM_PROMPT,
            prompt=PROMPT_TEMPLATE.format(**payload.model_dump()),
            schema=SuggestFollowUpOutput,
        )

    outcome = await dispatcher.dispatch(
        DispatchRequest(OPERATION, data),
        attempt=_attempt,
        fallback=lambda request: SuggestFollowUpOutput(follow_up_suggestion=APOLOGY_MESSAGE),
    )

    if outcome.is_fallback:
        logger.warning("Follow-up suggestion unavailable", extra={"reason": outcome.reason})
        return FollowUpSuggestion(
            follow_up_suggestion=outcome.result.follow_up_suggestion,
            notice=f"Could not generate follow-up suggestion: {outcome.reason}.",
            generated=False,
        )
    return FollowUpSuggestion(follow_up_suggestion=outcome.result.follow_up_suggestion)
