"""
AI assistant APIs: streaming chat and complaint formatting.
"""
import json
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from database.models import User
from auth.dependencies import get_current_user
from core.exceptions import PortalError
from core.logger import logger
from services.ai_gateway import GatewaySettings, ComplaintFormatter
from services.chat_relay import ChatRelay, ChatStream


router = APIRouter(prefix="/api/assistant", tags=["assistant"])


class ChatRequest(BaseModel):
    """Chat request; userRole defaults to the caller's role."""
    messages: List[dict]
    userRole: Optional[str] = None


class FormatRequest(BaseModel):
    """Complaint formatting request."""
    description: str
    category: Optional[str] = None
    title: Optional[str] = None


def get_chat_relay() -> ChatRelay:
    return ChatRelay(GatewaySettings.from_config())


def get_complaint_formatter() -> ComplaintFormatter:
    return ComplaintFormatter(GatewaySettings.from_config())


def _sse_line(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


async def _event_stream(stream: ChatStream):
    try:
        async for fragment in stream.fragments():
            yield _sse_line(fragment)
    except PortalError as e:
        # Headers are already sent; end the stream cleanly
        logger.error(f"Chat stream ended early: {e.message}")
    finally:
        await stream.aclose()
    yield "data: [DONE]\n\n"


@router.post("/chat")
async def chat(
    data: ChatRequest,
    current_user: User = Depends(get_current_user),
    relay: ChatRelay = Depends(get_chat_relay)
):
    """
    Relay a conversation to the AI gateway and stream the reply as server-sent events.
    Upstream errors are returned as JSON before streaming starts.
    """
    user_role = data.userRole or current_user.role.value
    stream = await relay.open(data.messages, user_role)
    return StreamingResponse(
        _event_stream(stream),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )


@router.post("/format-complaint", response_model=dict)
async def format_complaint(
    data: FormatRequest,
    current_user: User = Depends(get_current_user),
    formatter: ComplaintFormatter = Depends(get_complaint_formatter)
):
    """Rewrite a rough complaint description into a clear, structured one."""
    text = await formatter.format(data.description, category=data.category, title=data.title)
    return {"formattedText": text}
