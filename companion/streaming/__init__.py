"""
Token-by-token delivery of chat responses over a server-sent events stream.
"""

from .chat import ChatStreamer, get_streaming_config, is_streaming_available
from .session import SessionState, StreamSession, StreamSessionManager, StreamTransport

__all__ = [
    "ChatStreamer",
    "SessionState",
    "StreamSession",
    "StreamSessionManager",
    "StreamTransport",
    "get_streaming_config",
    "is_streaming_available",
]
