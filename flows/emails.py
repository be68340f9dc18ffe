# flows/emails.py
"""
Sent-email records.

Stores what was sent and when its follow-up is due. The follow-up time comes
from flows.schedule_follow_up and is written here by the caller.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from core import metrics
from core.exceptions import PersistenceError
from flows.database import Email, SessionLocal

logger = logging.getLogger(__name__)


class EmailCategory(str, Enum):
    INTERNSHIP = "internship"
    JOB = "job"
    COLD_OUTREACH = "cold-outreach"


class Attachment(BaseModel):
    name: str
    size: int = Field(..., ge=0)


class NewEmail(BaseModel):
    to: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    subject: str
    body: str
    category: EmailCategory
    attachments: List[Attachment] = Field(default_factory=list)
    follow_up_at: Optional[datetime] = None
    user_email: str


class EmailRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    to: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    subject: str
    body: str
    category: str
    attachments: List[Attachment] = Field(default_factory=list)
    sent_at: Optional[datetime] = None
    follow_up_at: Optional[datetime] = None

    @field_validator("attachments", mode="before")
    @classmethod
    def attachments_default(cls, v):
        return v or []


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to UTC; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(row: Email) -> EmailRecord:
    record = EmailRecord.model_validate(row)
    # SQLite hands timestamps back naive
    return record.model_copy(update={
        "sent_at": _as_utc(record.sent_at),
        "follow_up_at": _as_utc(record.follow_up_at),
    })


def add_email(email: NewEmail) -> EmailRecord:
    row = Email(
        to=email.to,
        cc=email.cc or None,
        bcc=email.bcc or None,
        subject=email.subject,
        body=email.body,
        category=email.category.value,
        attachments=[a.model_dump() for a in email.attachments],
        sent_at=datetime.now(timezone.utc),
        follow_up_at=_as_utc(email.follow_up_at),
        user_email=email.user_email,
    )
    try:
        with SessionLocal() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            record = _to_record(row)
    except SQLAlchemyError as e:
        logger.exception("Error adding email", extra={"error": str(e)})
        raise PersistenceError("Could not add email.") from e

    metrics.record_email(record.category, record.follow_up_at is not None)
    logger.info("Email recorded", extra={"email_id": record.id, "category": record.category})
    return record


def _query(statement) -> List[EmailRecord]:
    try:
        with SessionLocal() as db:
            return [_to_record(row) for row in db.scalars(statement)]
    except SQLAlchemyError as e:
        logger.exception("Error fetching emails", extra={"error": str(e)})
        raise PersistenceError("Could not fetch emails.") from e


def list_emails(user_email: str) -> List[EmailRecord]:
    """All emails sent by `user_email`, newest first."""
    return _query(
        select(Email)
        .where(Email.user_email == user_email)
        .order_by(Email.sent_at.desc(), Email.id.desc())
    )


def list_follow_ups(user_email: str) -> List[EmailRecord]:
    """Emails with a scheduled follow-up, soonest first."""
    return _query(
        select(Email)
        .where(Email.user_email == user_email, Email.follow_up_at.is_not(None))
        .order_by(Email.follow_up_at.asc(), Email.id.asc())
    )


def list_due_follow_ups(user_email: str, now: Optional[datetime] = None) -> List[EmailRecord]:
    """Scheduled follow-ups whose time has come (follow_up_at <= now)."""
    now = _as_utc(now) or datetime.now(timezone.utc)
    return _query(
        select(Email)
        .where(
            Email.user_email == user_email,
            Email.follow_up_at.is_not(None),
            Email.follow_up_at <= now,
        )
        .order_by(Email.follow_up_at.asc(), Email.id.asc())
    )
