"""AI assistant routes: chat, event advice, week planning and event moves."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.chat import ChatService
from cycle_wellness.ai.client import LLMClient, LLMError
from cycle_wellness.ai.moves import EventMoveService, MoveNotFoundError, ReplyValidationError
from cycle_wellness.ai.planner import WeekPlanner
from cycle_wellness.ai.suggestions import SuggestionService
from cycle_wellness.api.deps import get_llm_client, require_llm
from cycle_wellness.api.rate_limit import rate_limit
from cycle_wellness.auth.dependencies import get_current_user, require_admin
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import User
from cycle_wellness.database.queries import get_user_event
from cycle_wellness.monitoring.ai_logging import (
    OperationTimeout,
    get_ai_stats,
    with_timeout,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CHAT_TIMEOUT = 60.0
SUGGESTION_TIMEOUT = 20.0


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)


class ChatResponse(BaseModel):
    response: str
    detected_name: str | None = None


class ChatMessageResponse(BaseModel):
    role: str
    content: str
    created_at: datetime | None


class SuggestionResponse(BaseModel):
    event_id: str
    suggestion: str
    justification: str | None


class RecalculateResponse(BaseModel):
    updated: int


class MoveSuggestionResponse(BaseModel):
    id: str
    event_id: str | None
    event_title: str
    reason: str | None
    suggested_start: datetime
    suggested_end: datetime
    status: str


class PlannerResponse(BaseModel):
    suggestion: MoveSuggestionResponse | None
    message: str


class EmailPreviewResponse(BaseModel):
    subject: str
    body: str
    recipients: list[str]
    event_title: str


class MoveResponse(BaseModel):
    success: bool
    status: str
    message: str
    participants: list[str]
    thread_id: str | None


class EmailReplyRequest(BaseModel):
    thread_id: str
    email_body: str


class EmailReplyResponse(BaseModel):
    suggestion_id: str
    status: str
    message: str
    new_start: datetime | None


class CheckRepliesResponse(BaseModel):
    processed: int
    errors: int


def _model_unavailable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


@router.post(
    "/chat",
    response_model=ChatResponse,
    dependencies=[Depends(rate_limit("ai-chat"))],
)
async def chat(
    data: ChatRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> ChatResponse:
    """Send a message to the assistant and get its answer."""
    require_llm(llm)
    monitor = llm.monitor
    try:
        async with monitor.timer("ai-chat"):
            reply = await with_timeout(
                ChatService(db, llm).send(user.id, data.message), CHAT_TIMEOUT, "ai-chat"
            )
    except (LLMError, OperationTimeout) as e:
        logger.error(f"Chat failed for {user.id}: {e}")
        await monitor.log_error_notification(
            "ai-chat", "Ассистент временно недоступен. Попробуй позже.", severity="high"
        )
        await db.commit()
        raise _model_unavailable("AI service unavailable")

    await db.commit()
    return ChatResponse(response=reply.response, detected_name=reply.detected_name)


@router.get("/chat/history", response_model=list[ChatMessageResponse])
async def chat_history(
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> list[ChatMessageResponse]:
    messages = await ChatService(db, llm).history(user.id, limit=limit)
    return [
        ChatMessageResponse(role=m.role, content=m.content, created_at=m.created_at)
        for m in messages
    ]


@router.post(
    "/events/{event_id}/suggestion",
    response_model=SuggestionResponse,
    dependencies=[Depends(rate_limit("generate-ai-suggestion"))],
)
async def generate_suggestion(
    event_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> SuggestionResponse:
    """(Re)generate cycle-aware advice for one event."""
    event = await get_user_event(db, user.id, event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")

    monitor = llm.monitor
    try:
        async with monitor.timer("generate-ai-suggestion"):
            row = await with_timeout(
                SuggestionService(db, llm).generate_and_save(user.id, event),
                SUGGESTION_TIMEOUT,
                "generate-ai-suggestion",
            )
    except OperationTimeout as e:
        await monitor.log_error_notification("generate-ai-suggestion", str(e))
        await db.commit()
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))

    await db.commit()
    return SuggestionResponse(
        event_id=str(event.id),
        suggestion=row.suggestion,
        justification=row.justification,
    )


@router.post("/suggestions/recalculate", response_model=RecalculateResponse)
async def recalculate_suggestions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> RecalculateResponse:
    """Regenerate advice for all upcoming events, e.g. after cycle data changed."""
    updated = await SuggestionService(db, llm).recalculate(user.id)
    return RecalculateResponse(updated=updated)


@router.post(
    "/week-planner",
    response_model=PlannerResponse,
    dependencies=[Depends(rate_limit("ai-week-planner"))],
)
async def plan_week(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> PlannerResponse:
    """Look for an overloaded day this week and propose one move."""
    require_llm(llm)
    async with llm.monitor.timer("ai-week-planner"):
        suggestion = await WeekPlanner(db, llm).plan_for_user(user.id)

    await db.commit()
    if suggestion is None:
        return PlannerResponse(suggestion=None, message="Неделя выглядит сбалансированной")

    return PlannerResponse(
        suggestion=MoveSuggestionResponse(
            id=str(suggestion.id),
            event_id=str(suggestion.event_id) if suggestion.event_id else None,
            event_title=suggestion.event_title,
            reason=suggestion.reason,
            suggested_start=suggestion.suggested_start,
            suggested_end=suggestion.suggested_end,
            status=suggestion.status,
        ),
        message=suggestion.reason or "",
    )


@router.get(
    "/moves/{suggestion_id}/preview",
    response_model=EmailPreviewResponse,
    dependencies=[Depends(rate_limit("ai-generate-email-preview"))],
)
async def preview_move_email(
    suggestion_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> EmailPreviewResponse:
    """Draft of the email participants would receive."""
    try:
        preview = await EventMoveService(db, llm).preview_email(user.id, suggestion_id)
    except MoveNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    await db.commit()
    return EmailPreviewResponse(
        subject=preview.subject,
        body=preview.body,
        recipients=preview.recipients,
        event_title=preview.event_title,
    )


@router.post(
    "/moves/{suggestion_id}/execute",
    response_model=MoveResponse,
    dependencies=[Depends(rate_limit("ai-handle-event-move"))],
)
async def execute_move(
    suggestion_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> MoveResponse:
    """Move the event, or email the participants and wait for their answer."""
    try:
        outcome = await EventMoveService(db, llm).execute_move(user.id, suggestion_id)
    except MoveNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return MoveResponse(
        success=outcome.success,
        status=outcome.status.value,
        message=outcome.message,
        participants=outcome.participants,
        thread_id=outcome.thread_id,
    )


@router.post("/email-reply", response_model=EmailReplyResponse)
async def handle_email_reply(
    data: EmailReplyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> EmailReplyResponse:
    """Settle a move suggestion from a participant's reply."""
    require_llm(llm)
    try:
        outcome = await EventMoveService(db, llm).handle_reply(
            user.id, data.thread_id, data.email_body
        )
    except ReplyValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MoveNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except LLMError as e:
        logger.error(f"Reply analysis failed for {user.id}: {e}")
        raise _model_unavailable("Could not analyse the reply")

    return EmailReplyResponse(
        suggestion_id=str(outcome.suggestion_id),
        status=outcome.status.value,
        message=outcome.message,
        new_start=outcome.new_start,
    )


@router.post("/check-replies", response_model=CheckRepliesResponse)
async def check_replies(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> CheckRepliesResponse:
    """Poll Gmail threads of the user's emailed suggestions."""
    require_llm(llm)
    result = await EventMoveService(db, llm).check_replies(user.id)
    return CheckRepliesResponse(processed=result.processed, errors=result.errors)


@router.get("/stats")
async def ai_stats(
    days: int = Query(default=7, ge=1, le=90),
    user_id: uuid.UUID | None = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """AI operation statistics (admin only)."""
    return await get_ai_stats(db, days=days, user_id=user_id)
