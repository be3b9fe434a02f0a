"""Pydantic schemas for the chat endpoints."""

from typing import List

from pydantic import BaseModel


class ChatRequest(BaseModel):
    message: str = ""


class ChatResponse(BaseModel):
    reply: str
    timestamp: str
    tokens_used: int = 0


class ChatHistoryResponse(BaseModel):
    messages: List[dict]
    message: str


class MessageResponse(BaseModel):
    message: str
