"""
Language-model gateway access shared by the chat relay and the complaint
formatter. The gateway speaks the OpenAI chat-completions protocol.
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from core.exceptions import (
    ConfigurationError, InvalidInput, RateLimited, ServiceUnavailable, UpstreamError
)
from core.logger import logger
import config

STUDENT_SYSTEM_PROMPT = """You are the Brotodesk AI assistant for students.
Help students understand how to submit a complaint, what information to include, and what each status means:
- Pending: the complaint was received and is waiting for an admin
- In Progress: an admin is working on it
- Waiting for Student: the admin needs more information from the student
- Resolved: the issue has been addressed
- Cancelled: the complaint was withdrawn or closed without action
Categories are System, Hostel, Internet, Food, Behaviour and Others. Urgency is Low, Medium or High.
Be concise, friendly and practical. Never promise outcomes on behalf of the administration."""

ADMIN_SYSTEM_PROMPT = """You are the Brotodesk AI assistant for administrators.
Help admins triage and prioritise complaints, draft clear and respectful resolution notes, and decide on status updates.
Statuses are Pending, In Progress, Waiting for Student, Resolved and Cancelled.
Keep answers short and actionable, and keep a professional tone suitable for messages that students will read."""

FORMATTER_SYSTEM_PROMPT = """You are a complaint formatting assistant for Brototype students.
Transform brief complaint descriptions into well-structured, professional complaints.

Guidelines:
- Keep the tone respectful but clear about the issue
- Include: issue description, impact on studies/stay, and a polite request for resolution
- Keep it concise (150-250 words max)
- Do NOT add fictional details - only expand on what the user provided
- Do NOT include placeholders like [date] or [name]
- Write in first person ("I am facing...")
- Be specific about the problem without inventing facts"""

SYSTEM_PROMPTS = {
    "student": STUDENT_SYSTEM_PROMPT,
    "admin": ADMIN_SYSTEM_PROMPT,
}

MIN_DESCRIPTION_LENGTH = 10


@dataclass(frozen=True)
class GatewaySettings:
    url: str
    api_key: str
    model: str
    connect_timeout: float

    @classmethod
    def from_config(cls) -> "GatewaySettings":
        if not config.AI_GATEWAY_API_KEY:
            raise ConfigurationError("AI_GATEWAY_API_KEY is not configured")
        return cls(
            url=config.AI_GATEWAY_URL,
            api_key=config.AI_GATEWAY_API_KEY,
            model=config.AI_MODEL,
            connect_timeout=config.AI_CONNECT_TIMEOUT_SECONDS
        )

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}


def raise_for_gateway_status(status_code: int, body: str = ""):
    """Map a non-2xx gateway status onto the error taxonomy."""
    if 200 <= status_code < 300:
        return
    if status_code == 429:
        raise RateLimited()
    if status_code == 402:
        raise ServiceUnavailable()
    logger.error(f"AI gateway error {status_code}: {body[:500]}")
    raise UpstreamError("AI gateway error")


class ComplaintFormatter:
    """Turns a rough description into a structured first-person complaint."""

    def __init__(self, settings: GatewaySettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @staticmethod
    def build_prompt(description: str, category: Optional[str] = None, title: Optional[str] = None) -> str:
        lines = [f"Category: {category or 'General'}"]
        if title:
            lines.append(f"Title: {title}")
        lines.append(f"Brief description: {description}")
        return "\n".join(lines) + "\n\nPlease format this into a professional complaint."

    async def format(self, description: str, category: Optional[str] = None, title: Optional[str] = None) -> str:
        if not description or len(description.strip()) < MIN_DESCRIPTION_LENGTH:
            raise InvalidInput(f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters")

        payload = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": FORMATTER_SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(description.strip(), category, title)},
            ],
        }
        timeout = httpx.Timeout(60.0, connect=self.settings.connect_timeout)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(self.settings.url, json=payload, headers=self.settings.headers)
        except httpx.HTTPError as e:
            logger.error(f"AI gateway request failed: {e}")
            raise UpstreamError("AI gateway error")

        raise_for_gateway_status(response.status_code, response.text)

        try:
            formatted = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            formatted = None
        if not formatted:
            raise UpstreamError("No response from AI")

        logger.info("Formatted complaint description")
        return formatted
