"""Question answering endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from backend.chatbot.api.deps import get_container
from backend.chatbot.container import Container
from backend.chatbot.models.chat import (
    MessageRequest,
    MessageResponse,
    QuestionRequest,
    QuestionResponse,
)

router = APIRouter(tags=["chat"])


@router.post("/chat/ask", response_model=QuestionResponse)
async def ask_question(
    request: QuestionRequest,
    container: Annotated[Container, Depends(get_container)],
) -> QuestionResponse:
    """Answer a question from the document corpus."""
    return await container.chat_service.process_question(request.question)


@router.post("/message", response_model=MessageResponse)
async def send_message(
    request: MessageRequest,
    container: Annotated[Container, Depends(get_container)],
) -> MessageResponse:
    """Conversational variant; echoes or generates conversation_id."""
    reply = await container.chat_service.process_message(request.message, request.conversation_id)
    return MessageResponse(data=reply)
