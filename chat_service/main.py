"""LCA assistant chat: forwards user questions to a chat-completion API."""

import logging
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from auth_service.utils import get_current_user_id
from common.config import Settings, get_settings
from common.http import get_http_client
from . import schemas
from .prompts import FALLBACK_REPLY, LCA_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])

# Upstream status -> (local status, error, user-facing reply)
UPSTREAM_ERRORS = {
    401: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Invalid API key",
          "There is an issue with the API configuration. Please contact support."),
    429: (status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded",
          "Too many requests. Please wait a moment before trying again."),
    400: (status.HTTP_400_BAD_REQUEST, "Invalid request",
          "There was an issue with your request. Please try rephrasing your question."),
}
GENERIC_ERROR = (status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error",
                 "I apologize, but I encountered an error processing your request. Please try again later.")


def _chat_error(status_code: int, error: str, reply: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": error, "reply": reply})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_completion_request(message: str, settings: Settings) -> dict:
    return {
        "model": settings.openai_model,
        "messages": [
            {"role": "system", "content": LCA_SYSTEM_PROMPT},
            {"role": "user", "content": message},
        ],
        "max_tokens": 500,
        "temperature": 0.7,
        "top_p": 1,
        "frequency_penalty": 0,
        "presence_penalty": 0,
    }


@router.post("/chat", response_model=schemas.ChatResponse)
async def chat(
    chat_in: schemas.ChatRequest,
    user_id: int = Depends(get_current_user_id),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
):
    """Answers one LCA question. No conversation state is kept between requests."""
    message = chat_in.message
    if not message or not message.strip():
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Message is required")

    if not settings.openai_api_key:
        logger.critical("OPENAI_API_KEY is not configured. Chat is unavailable.")
        raise _chat_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "OpenAI API key not configured",
            "I apologize, but the AI service is currently unavailable. Please check the API configuration.",
        )

    try:
        response = await client.post(
            settings.openai_api_url,
            json=build_completion_request(message, settings),
            headers={"Authorization": f"Bearer {settings.openai_api_key}"},
            timeout=settings.chat_timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()
    except httpx.TimeoutException:
        logger.error(f"Chat completion timed out for user {user_id}")
        raise _chat_error(status.HTTP_408_REQUEST_TIMEOUT, "Request timeout",
                          "The request took too long to process. Please try again.")
    except httpx.HTTPStatusError as exc:
        logger.error(f"Chat API error {exc.response.status_code}: {exc.response.text}")
        raise _chat_error(*UPSTREAM_ERRORS.get(exc.response.status_code, GENERIC_ERROR))
    except (httpx.RequestError, ValueError) as exc:
        logger.error(f"Chat API error: {exc}", exc_info=True)
        raise _chat_error(*GENERIC_ERROR)

    if not isinstance(data, dict):
        data = {}

    choices = data.get("choices") or [{}]
    reply = (choices[0].get("message") or {}).get("content") or FALLBACK_REPLY
    tokens_used = (data.get("usage") or {}).get("total_tokens") or 0

    logger.info(f"User {user_id}: {message}")
    logger.info(f"AI Reply: {reply[:100]}...")

    return {"reply": reply, "timestamp": _now_iso(), "tokens_used": tokens_used}


@router.get("/chat/history", response_model=schemas.ChatHistoryResponse)
def chat_history(user_id: int = Depends(get_current_user_id)):
    """Conversation history is not stored yet; always empty."""
    return {"messages": [], "message": "Chat history feature not yet implemented"}


@router.delete("/chat/session", response_model=schemas.MessageResponse)
def clear_chat_session(user_id: int = Depends(get_current_user_id)):
    return {"message": "Chat session cleared successfully"}


@router.get("/health", tags=["Monitoring"])
def health_check(settings: Settings = Depends(get_settings)):
    """Reports whether the chat API is configured."""
    return {
        "status": "healthy",
        "service": "LCA Chat API",
        "timestamp": _now_iso(),
        "openai_configured": bool(settings.openai_api_key),
    }
