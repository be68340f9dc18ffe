# api/app.py
# NOTE:
# Follow-up scheduling runs after the email has already been sent, so it must
# never fail the request: the flows return a fallback decision instead of
# raising, and its reason is returned as a non-blocking `notice`.
# Only persistence failures surface as HTTP errors.

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from core.credential_pool import CredentialPool
from core.dispatcher import KeyRotatingDispatcher
from core.exceptions import PersistenceError
from core.health import full_health_check
from core.http_client import close_client
from core.logging_config import setup_logging
from core.request_context import set_request_id
from flows import emails
from flows.database import init_db
from flows.emails import Attachment, EmailCategory, EmailRecord, NewEmail
from flows.schedule_follow_up import ScheduleFollowUpInput, ScheduleFollowUpOutput, schedule_follow_up
from flows.suggest_follow_up import FollowUpSuggestion, SuggestFollowUpInput, suggest_follow_up_message

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: configure structured JSON logging
    setup_logging()

    init_db()

    # One pool (and rotation cursor) per process, shared by all requests
    pool = CredentialPool.from_env()
    app.state.dispatcher = KeyRotatingDispatcher(pool)

    yield

    await close_client()


app = FastAPI(
    title="MailTrack Pro",
    lifespan=lifespan
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Generate a unique request ID and store it in the context."""
    request_id = str(uuid.uuid4())
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def get_dispatcher(request: Request) -> KeyRotatingDispatcher:
    return request.app.state.dispatcher


class SendEmailRequest(BaseModel):
    to: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    category: EmailCategory
    attachments: List[Attachment] = Field(default_factory=list)
    user_email: str
    sender_email: Optional[str] = None


class SendEmailResponse(BaseModel):
    email: EmailRecord
    follow_up: ScheduleFollowUpOutput
    notice: str


@app.post("/emails", status_code=201, response_model=SendEmailResponse)
async def record_sent_email(
    req: SendEmailRequest,
    dispatcher: KeyRotatingDispatcher = Depends(get_dispatcher),
):
    """
    Record a sent email and schedule its follow-up reminder.
    The follow-up decision always succeeds (AI or default schedule).
    """
    decision = await schedule_follow_up(
        ScheduleFollowUpInput(
            email_content=req.body,
            email_category=req.category.value,
            sender_email=req.sender_email or req.user_email,
            recipient_email=req.to,
            subject=req.subject,
        ),
        dispatcher,
    )

    follow_up_at = None
    if decision.follow_up_scheduled and decision.follow_up_date:
        follow_up_at = datetime.fromisoformat(decision.follow_up_date)

    try:
        record = await asyncio.to_thread(emails.add_email, NewEmail(
            to=req.to,
            cc=req.cc,
            bcc=req.bcc,
            subject=req.subject,
            body=req.body,
            category=req.category,
            attachments=req.attachments,
            follow_up_at=follow_up_at,
            user_email=req.user_email,
        ))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    notice = "Email recorded."
    if decision.reason:
        notice = f"{notice} {decision.reason}"
    return SendEmailResponse(email=record, follow_up=decision, notice=notice)


@app.get("/emails", response_model=List[EmailRecord])
async def get_emails(user_email: str = Query(..., description="Owner of the sent emails")):
    try:
        return await asyncio.to_thread(emails.list_emails, user_email)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/follow-ups", response_model=List[EmailRecord])
async def get_follow_ups(
    user_email: str = Query(...),
    due_only: bool = Query(False, description="Only follow-ups whose time has come"),
):
    try:
        if due_only:
            return await asyncio.to_thread(emails.list_due_follow_ups, user_email, datetime.now(timezone.utc))
        return await asyncio.to_thread(emails.list_follow_ups, user_email)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/follow-ups/suggest", response_model=FollowUpSuggestion)
async def suggest_follow_up(
    req: SuggestFollowUpInput,
    dispatcher: KeyRotatingDispatcher = Depends(get_dispatcher),
):
    """Draft a follow-up message; on failure the apology text comes back with a notice."""
    return await suggest_follow_up_message(req, dispatcher)


@app.get("/health/live")
async def liveness():
    """Kubernetes liveness probe."""
    return {"status": "alive"}


@app.get("/health/ready")
async def readiness(dispatcher: KeyRotatingDispatcher = Depends(get_dispatcher)):
    """Kubernetes readiness probe."""
    health = await full_health_check(dispatcher.pool)
    if health["status"] != "ok":
        return Response(
            content=json.dumps(health),
            status_code=503,
            media_type="application/json"
        )
    return health


@app.get("/health")
async def health(
    probe: bool = Query(False, description="Also call the inference service with one key"),
    dispatcher: KeyRotatingDispatcher = Depends(get_dispatcher),
):
    """Comprehensive health check for monitoring."""
    return await full_health_check(dispatcher.pool, probe=probe)


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
