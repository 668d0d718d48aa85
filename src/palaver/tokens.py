from typing import Literal, Sequence

from common import llm
from palaver.sessions.schema import Message

# USD per million tokens.
MODEL_PRICING: dict[str, dict[str, float]] = {
    "grok-4": {"input": 5.0, "output": 15.0},
    "grok-4-1-fast": {"input": 2.0, "output": 6.0},
    "grok-3": {"input": 2.0, "output": 8.0},
    "grok-3-mini": {"input": 0.5, "output": 1.5},
    "default": {"input": 5.0, "output": 15.0},
}


def count_tokens(text: str, model: str = "gpt-4o") -> int:
    return llm.count_tokens(model, text)


def calculate_cost(tokens: int, model: str, kind: Literal["input", "output"]) -> float:
    pricing = MODEL_PRICING.get(model, MODEL_PRICING["default"])
    return (tokens / 1_000_000) * pricing[kind]


def usage_for(message: Message, model: str) -> dict:
    tokens = count_tokens(message.content, model)
    kind = "output" if message.role == "assistant" else "input"
    return {"token_count": tokens, "cost": calculate_cost(tokens, model, kind)}


def session_totals(messages: Sequence[Message]) -> dict:
    return {
        "messages": len(messages),
        "tokens": sum(m.token_count or 0 for m in messages),
        "cost_usd": sum(m.cost or 0.0 for m in messages),
    }
