"""Translation of gateway chat notifications into viewer events.

Gateway ``chat`` events carry ``payload.state`` in {delta, final, error,
aborted}. Each recognised state becomes one :class:`ChatEvent` delivered to
every subscriber, typically the viewer broadcast.
"""

from __future__ import annotations

import enum
import inspect
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from .messages import extract_text
from .protocol import error_details

logger = logging.getLogger(__name__)

CHAT_EVENT = "chat"
DEFAULT_ERROR_MESSAGE = "chat error"
MAX_TRACKED_RUNS = 256


class ChatEventKind(str, enum.Enum):
    DELTA = "delta"
    FINAL = "final"
    ERROR = "error"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ChatEvent:
    """Normalized chat event for one run."""

    kind: ChatEventKind
    run_id: Optional[str]
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.kind is not ChatEventKind.DELTA

    @property
    def status(self) -> Optional[str]:
        """Terminal status: ``done``, ``aborted`` or ``error``; None for deltas."""
        if self.kind is ChatEventKind.FINAL:
            return "done"
        if self.kind is ChatEventKind.ABORTED:
            return "aborted"
        if self.kind is ChatEventKind.ERROR:
            return "error"
        return None

    def to_broadcast(self) -> dict[str, Any]:
        """Return the message pushed to display viewers."""
        if self.kind is ChatEventKind.DELTA:
            return {"type": "chat.delta", "runId": self.run_id, "text": self.text}
        if self.kind is ChatEventKind.ERROR:
            return {"type": "chat.error", "runId": self.run_id, "error": self.error}
        return {"type": "chat.final", "runId": self.run_id, "text": self.text or "", "state": self.status}


ChatEventHandler = Callable[[ChatEvent], Union[None, Awaitable[None]]]


class ChatEventRouter:
    """Routes gateway notifications to chat event subscribers.

    Non-chat events, malformed payloads and unknown states are ignored.
    The latest delta text of each open run is remembered so that an aborted
    run without a message still reports what had been streamed.
    """

    def __init__(self, max_tracked_runs: int = MAX_TRACKED_RUNS) -> None:
        self._handlers: list[ChatEventHandler] = []
        self._partial_text: OrderedDict[str, str] = OrderedDict()
        self._max_tracked_runs = max_tracked_runs

    def subscribe(self, handler: ChatEventHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: ChatEventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def on_notification(self, event_name: str, payload: Any) -> Optional[ChatEvent]:
        """Handle one gateway notification.

        Returns the emitted event, or None when the notification was ignored.
        """
        if event_name != CHAT_EVENT:
            logger.debug("Ignoring gateway event: %s", event_name)
            return None

        event = self._interpret(payload)
        if event is None:
            return None

        await self._emit(event)
        return event

    def _interpret(self, payload: Any) -> Optional[ChatEvent]:
        if not isinstance(payload, dict):
            logger.debug("Ignoring chat event with non-object payload")
            return None

        state = payload.get("state")
        run_id = payload.get("runId")
        if run_id is not None and not isinstance(run_id, str):
            run_id = str(run_id)

        if state == ChatEventKind.DELTA.value:
            text = extract_text(payload.get("message"))
            if not text:
                return None
            self._remember(run_id, text)
            return ChatEvent(ChatEventKind.DELTA, run_id, text=text)

        if state == ChatEventKind.FINAL.value:
            self._forget(run_id)
            return ChatEvent(ChatEventKind.FINAL, run_id, text=extract_text(payload.get("message")))

        if state == ChatEventKind.ERROR.value:
            self._forget(run_id)
            message = payload.get("errorMessage") or payload.get("error") or DEFAULT_ERROR_MESSAGE
            if isinstance(message, dict):
                message = error_details(message)[1]
            return ChatEvent(ChatEventKind.ERROR, run_id, error=str(message))

        if state == ChatEventKind.ABORTED.value:
            text = extract_text(payload.get("message")) or self._forget(run_id)
            self._forget(run_id)
            return ChatEvent(ChatEventKind.ABORTED, run_id, text=text)

        logger.debug("Ignoring chat event with state=%r", state)
        return None

    def _remember(self, run_id: Optional[str], text: str) -> None:
        if run_id is None:
            return
        self._partial_text[run_id] = text
        self._partial_text.move_to_end(run_id)
        while len(self._partial_text) > self._max_tracked_runs:
            self._partial_text.popitem(last=False)

    def _forget(self, run_id: Optional[str]) -> str:
        if run_id is None:
            return ""
        return self._partial_text.pop(run_id, "")

    async def _emit(self, event: ChatEvent) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Chat event handler failed for %s run=%s", event.kind.value, event.run_id)


__all__ = [
    "CHAT_EVENT",
    "ChatEvent",
    "ChatEventHandler",
    "ChatEventKind",
    "ChatEventRouter",
]
