"""Question answering request/response models."""

from pydantic import BaseModel, Field


class QuestionRequest(BaseModel):
    question: str


class QuestionResponse(BaseModel):
    """Answer to a question and whether it came from a cache layer."""

    question: str
    answer: str
    cached: bool = False


class MessageRequest(BaseModel):
    """Conversational message; conversation_id is opaque pass-through state."""

    message: str
    conversation_id: str | None = None


class MessageReply(BaseModel):
    response: str
    message: str
    conversation_id: str
    cached: bool


class MessageResponse(BaseModel):
    success: bool = True
    data: MessageReply


class ErrorResponse(BaseModel):
    success: bool = False
    message: str = Field(..., description="Human-readable error message")
