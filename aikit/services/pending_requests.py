"""Tracker for permission requests awaiting a user answer."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from aikit.infra.config import config
from aikit.infra.error_handler import PermissionTimeoutError
from aikit.infra.metrics import pending_permission_requests

logger = logging.getLogger(__name__)


@dataclass
class PendingPermissionRequest:
    request_id: str
    tool_name: str
    domain: Optional[str]
    conversation_id: Optional[str]
    future: asyncio.Future
    created_at: float = field(default_factory=time.time)


class PendingRequestTracker:
    """
    One future per outstanding permission request.

    Every entry is settled at most once: a response, a timeout, a discard
    or shutdown removes it, and later responses for the same id are no-ops.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout if timeout is not None else config.PERMISSION_REQUEST_TIMEOUT
        self._pending: Dict[str, PendingPermissionRequest] = {}

    def create(
        self,
        tool_name: str,
        domain: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> PendingPermissionRequest:
        request_id = f"perm-{uuid.uuid4().hex}"
        entry = PendingPermissionRequest(
            request_id=request_id,
            tool_name=tool_name,
            domain=domain,
            conversation_id=conversation_id,
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[request_id] = entry
        pending_permission_requests.set(len(self._pending))
        logger.debug(f"Created permission request {request_id} for {tool_name}")
        return entry

    async def wait(self, entry: PendingPermissionRequest) -> bool:
        """
        Wait for the user's answer.

        The entry itself is awaited rather than looked up again, so an
        answer that arrives before waiting starts is not lost.

        Args:
            entry: Request returned by create()

        Returns:
            True if granted, False if denied

        Raises:
            PermissionTimeoutError: If nobody answered within the window
        """
        try:
            return await asyncio.wait_for(entry.future, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Permission request {entry.request_id} for {entry.tool_name} timed out")
            raise PermissionTimeoutError(entry.request_id, self.timeout)
        finally:
            self._remove(entry.request_id)

    def resolve(self, request_id: str, granted: bool) -> Optional[PendingPermissionRequest]:
        """Settle a request. Unknown or already settled ids are logged and ignored."""
        entry = self._pending.pop(request_id, None)
        pending_permission_requests.set(len(self._pending))
        if entry is None:
            logger.warning(f"Ignoring response for unknown permission request {request_id}")
            return None
        if not entry.future.done():
            entry.future.set_result(bool(granted))
        return entry

    def discard(self, request_id: str) -> bool:
        """Drop a request whose conversation was abandoned."""
        entry = self._remove(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.cancel()
        return True

    def discard_conversation(self, conversation_id: str) -> int:
        ids = [rid for rid, e in self._pending.items() if e.conversation_id == conversation_id]
        for request_id in ids:
            self.discard(request_id)
        return len(ids)

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Remove entries older than the timeout window; returns their ids."""
        now = time.time() if now is None else now
        expired = [rid for rid, e in self._pending.items() if now - e.created_at >= self.timeout]
        for request_id in expired:
            entry = self._remove(request_id)
            if entry is not None and not entry.future.done():
                entry.future.set_result(False)
        if expired:
            logger.info(f"Swept {len(expired)} expired permission requests")
        return expired

    def cancel_all(self) -> None:
        for request_id in list(self._pending):
            self.discard(request_id)

    def get(self, request_id: str) -> Optional[PendingPermissionRequest]:
        return self._pending.get(request_id)

    def _remove(self, request_id: str) -> Optional[PendingPermissionRequest]:
        entry = self._pending.pop(request_id, None)
        pending_permission_requests.set(len(self._pending))
        return entry

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._pending
