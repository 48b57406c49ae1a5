"""
Chat endpoints.

- POST /chat/messages - Run one advisory chat turn
- POST /chat/context  - Preview the context (and rendered prompt block) for a message
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from advisor.schemas import ChatReply, CompleteContext
from api.dependencies import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat")


class ChatMessageRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    thread_id: str = Field(..., min_length=1)
    message: str = Field(..., max_length=5000)


class ContextPreviewResponse(BaseModel):
    context: CompleteContext
    prompt: str


@router.post("/messages", response_model=ChatReply)
async def send_message(
    payload: ChatMessageRequest,
    services: Annotated[AppServices, Depends(get_services)],
) -> ChatReply:
    """
    Send a farmer message and get the Krishi Officer's reply.

    **Errors:**
    - **400**: Empty message
    - **404**: Thread not found for this user
    - **502**: AI generation failed
    """
    return await services.chat_service.generate_reply(
        payload.user_id, payload.thread_id, payload.message
    )


@router.post("/context", response_model=ContextPreviewResponse)
async def preview_context(
    payload: ChatMessageRequest,
    services: Annotated[AppServices, Depends(get_services)],
) -> ContextPreviewResponse:
    context = await services.context_service.build_complete_context(
        payload.user_id, payload.thread_id, payload.message
    )
    return ContextPreviewResponse(
        context=context,
        prompt=services.context_service.format_context_for_ai(context),
    )
