"""
Streaming wire protocol framing.

Each event is one ``data: <json>`` line followed by a blank line; keep-alive
is an SSE comment line that clients ignore.
"""

import json
from typing import Any, Dict

KEEP_ALIVE = ": keep-alive\n\n"


def format_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def start_event() -> Dict[str, Any]:
    return {"type": "start"}


def token_event(content: str, token_count: int) -> Dict[str, Any]:
    return {"type": "token", "content": content, "tokenCount": token_count}


def complete_event(full_response: str, token_count: int, finish_reason: str = "stop", **extra: Any) -> Dict[str, Any]:
    return {
        "type": "complete",
        "fullResponse": full_response,
        "tokenCount": token_count,
        "finishReason": finish_reason,
        **extra,
    }


def error_event(message: str, fallback: bool = False) -> Dict[str, Any]:
    return {"type": "error", "error": message, "fallback": fallback}
