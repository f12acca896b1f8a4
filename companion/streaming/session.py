"""
Streaming Session Manager

A StreamSession owns one client connection and frames output into the wire
protocol. State machine:

    OPEN -> (token)* -> COMPLETED
    OPEN -> (token)* -> ERRORED
    OPEN -> CANCELLED            (client went away; nothing more can be written)

At most one terminal event (``complete`` or ``error`` with fallback false) is
ever written, and the transport is closed right after it.
"""

from __future__ import annotations
import asyncio
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from companion.exceptions import ClientDisconnectedError
from companion.utils.logging import get_logger
from .events import (
    KEEP_ALIVE,
    complete_event,
    error_event,
    format_event,
    start_event,
    token_event,
)

logger = get_logger(__name__)

DEFAULT_KEEPALIVE_EVERY = 10
GENERIC_STREAM_ERROR = "Streaming failed. Please try again."


class SessionState(Enum):
    OPEN = "open"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


class StreamTransport(ABC):
    """Byte sink for one client connection"""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Write framed text; raise ConnectionError when the client is gone"""

    @abstractmethod
    async def close(self) -> None:
        """Finish the response"""


class StreamSession:
    """One client connection's view of a streamed response"""

    def __init__(
        self,
        transport: StreamTransport,
        keepalive_every: int = DEFAULT_KEEPALIVE_EVERY,
        cancel_event: Optional[asyncio.Event] = None,
        session_id: Optional[str] = None,
        account_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.transport = transport
        self.keepalive_every = keepalive_every
        self.cancel_event = cancel_event or asyncio.Event()
        self.account_id = account_id
        self.state = SessionState.OPEN
        self.token_count = 0
        self.started = False
        self._buffer: List[str] = []

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    @property
    def full_response(self) -> str:
        return "".join(self._buffer)

    def _log_extra(self, event: str, **detail) -> Dict:
        return {
            "event": event,
            "account_id": self.account_id,
            "request_id": self.session_id,
            "detail": {"token_count": self.token_count, **detail},
        }

    async def _send(self, text: str) -> None:
        if not self.is_open:
            raise RuntimeError(f"Stream session {self.session_id} is {self.state.value}")
        try:
            await self.transport.send(text)
        except ConnectionError as e:
            self.mark_cancelled(f"client disconnected: {e}")
            raise ClientDisconnectedError(f"Client disconnected from session {self.session_id}") from e

    def mark_cancelled(self, reason: str = "cancelled") -> None:
        """Stop the session without writing; upstream work sees the cancel signal"""
        if self.is_open:
            self.state = SessionState.CANCELLED
            logger.info(
                f"Stream session cancelled: {reason}",
                extra=self._log_extra("stream.session.cancelled", reason=reason),
            )
        self.cancel_event.set()

    async def start(self) -> None:
        if self.started:
            return
        await self._send(format_event(start_event()))
        self.started = True

    async def emit_token(self, content: str) -> None:
        """Send one token; every Nth token is followed by a keep-alive comment"""
        if not content:
            return
        self.token_count += 1
        self._buffer.append(content)
        await self._send(format_event(token_event(content, self.token_count)))
        if self.keepalive_every and self.token_count % self.keepalive_every == 0:
            await self._send(KEEP_ALIVE)

    async def notify_fallback(self, message: str) -> None:
        """
        Non-terminal error notice that delivery restarts from the fallback path.

        The buffer is reset so ``complete`` carries only the fallback text;
        ``token_count`` keeps increasing.
        """
        await self._send(format_event(error_event(message, fallback=True)))
        self._buffer = []
        logger.warning(
            f"Stream switched to fallback: {message}",
            extra=self._log_extra("stream.session.fallback"),
        )

    async def complete(self, finish_reason: str = "stop", **extra) -> bool:
        """Write the single ``complete`` event; returns False if already terminal"""
        if not self.is_open:
            logger.debug(f"Ignoring complete on {self.state.value} session {self.session_id}")
            return False
        await self._send(format_event(complete_event(self.full_response, self.token_count, finish_reason, **extra)))
        self.state = SessionState.COMPLETED
        logger.info(
            f"Stream session complete ({self.token_count} tokens)",
            extra=self._log_extra("stream.session.complete", finish_reason=finish_reason),
        )
        await self._close_transport()
        return True

    async def fail(self, message: str) -> bool:
        """Write the single terminal ``error`` event; returns False if already terminal"""
        if not self.is_open:
            logger.debug(f"Ignoring error on {self.state.value} session {self.session_id}")
            return False
        await self._send(format_event(error_event(message, fallback=False)))
        self.state = SessionState.ERRORED
        logger.error(
            f"Stream session errored: {message}",
            extra=self._log_extra("stream.session.error"),
        )
        await self._close_transport()
        return True

    async def _close_transport(self) -> None:
        try:
            await self.transport.close()
        except ConnectionError as e:
            logger.debug(f"Transport already closed for session {self.session_id}: {e}")


class StreamSessionManager:
    """Tracks live sessions and guarantees each one ends with a terminal event or a cancel"""

    def __init__(self, keepalive_every: int = DEFAULT_KEEPALIVE_EVERY):
        self.keepalive_every = keepalive_every
        self._sessions: Dict[str, StreamSession] = {}

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Optional[StreamSession]:
        return self._sessions.get(session_id)

    @asynccontextmanager
    async def open(self, transport: StreamTransport, account_id: Optional[str] = None) -> AsyncIterator[StreamSession]:
        """
        Register a session for the duration of the block.

        A block that leaves the session open, or raises, gets a terminal error
        written on its behalf; a client disconnect ends the block quietly.
        """
        session = StreamSession(transport, keepalive_every=self.keepalive_every, account_id=account_id)
        self._sessions[session.session_id] = session
        logger.debug(f"Stream session opened: {session.session_id}")

        try:
            yield session
        except ClientDisconnectedError:
            logger.info(f"Client left stream session {session.session_id}")
        except asyncio.CancelledError:
            session.mark_cancelled("task cancelled")
            raise
        except Exception as e:
            logger.error(
                f"Stream session {session.session_id} failed: {e}",
                exc_info=True,
                extra=session._log_extra("stream.session.unhandled"),
            )
            await self._terminate(session)
        else:
            if session.is_open:
                logger.warning(f"Stream session {session.session_id} ended without a terminal event")
                await self._terminate(session)
        finally:
            self._sessions.pop(session.session_id, None)

    async def _terminate(self, session: StreamSession) -> None:
        if not session.is_open:
            return
        try:
            await session.fail(GENERIC_STREAM_ERROR)
        except ClientDisconnectedError:
            logger.debug(f"Could not deliver terminal error to session {session.session_id}")

    def cancel_all(self) -> None:
        """Signal every live session to stop (shutdown)"""
        for session in list(self._sessions.values()):
            session.mark_cancelled("server shutdown")
