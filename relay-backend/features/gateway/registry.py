"""Correlation of outbound requests with their response frames.

Each pending request owns an ``asyncio.Future`` that is completed exactly once:
by a matching response, by a rejection, or by the connection-wide
``reject_all`` on teardown. The registry is owned by one event loop and the
connection's reader task is the only code path that resolves entries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .exceptions import DuplicateRequestId

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """One outstanding request awaiting its response."""

    id: str
    method: str
    future: asyncio.Future
    created_at: float = field(default_factory=time.monotonic)


class RequestRegistry:
    """In-memory table of pending requests keyed by request id."""

    def __init__(self) -> None:
        self._pending: Dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def pending_ids(self) -> List[str]:
        return list(self._pending)

    def register(self, request_id: str, method: str) -> asyncio.Future:
        """Register a request and return the future its response will complete.

        Raises:
            DuplicateRequestId: If ``request_id`` is already pending
        """
        if request_id in self._pending:
            raise DuplicateRequestId(f"Request id already pending: {request_id}")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingRequest(id=request_id, method=method, future=future)
        logger.debug("Registered request: method=%s id=%s...", method, request_id[:8])
        return future

    def _take(self, request_id: str, action: str) -> PendingRequest | None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.warning("Cannot %s unknown request: %s", action, request_id)
            return None
        if entry.future.done():
            logger.warning("Cannot %s completed request: %s", action, request_id)
            return None
        return entry

    def resolve(self, request_id: str, payload: Any) -> bool:
        """Complete a pending request with its payload.

        Returns False (and logs) when the id is unknown or already finished.
        """
        entry = self._take(request_id, "resolve")
        if entry is None:
            return False
        entry.future.set_result(payload)
        logger.debug(
            "Resolved request: method=%s id=%s... after %.3fs",
            entry.method,
            request_id[:8],
            time.monotonic() - entry.created_at,
        )
        return True

    def reject(self, request_id: str, error: BaseException) -> bool:
        """Fail a pending request with ``error``."""
        entry = self._take(request_id, "reject")
        if entry is None:
            return False
        entry.future.set_exception(error)
        return True

    def discard(self, request_id: str) -> bool:
        """Deregister a request without a reply, cancelling its future."""
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.cancel()
        return True

    def reject_all(self, error: BaseException) -> int:
        """Fail every pending request with ``error`` and empty the registry.

        Returns the number of requests that were rejected.
        """
        entries = list(self._pending.values())
        self._pending.clear()

        rejected = 0
        for entry in entries:
            if not entry.future.done():
                entry.future.set_exception(error)
                rejected += 1
        if rejected:
            logger.info("Rejected %d pending request(s): %s", rejected, error)
        return rejected


__all__ = ["PendingRequest", "RequestRegistry"]
