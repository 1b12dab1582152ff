"""FastAPI dependencies."""

from fastapi import Request

from backend.chatbot.container import Container


def get_container(request: Request) -> Container:
    """Container attached to the app at startup."""
    return request.app.state.container
