"""
Call record operations gated by the access control service.

Call fields are stored as entered by the call entry form; only the
permission checks and bookkeeping stamps are applied here.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .access.control import AccessControlService
from .access.permissions import Capability
from .backends.base import DataStore, Unsubscribe, join_path


CALLS_PATH = "calls"

CallRecord = Dict[str, Any]
CallListHandler = Callable[[List[CallRecord]], None]


def calls_from_snapshot(value: Any) -> List[CallRecord]:
    """
    Convert a ``calls`` snapshot into a list, most recent first.

    Each record gets its store key as ``id``.
    """
    if not isinstance(value, dict):
        return []

    calls = [
        {"id": key, **record}
        for key, record in value.items()
        if isinstance(record, dict)
    ]
    calls.sort(key=lambda call: str(call.get("createdAt") or ""), reverse=True)
    return calls


class CallLog:
    """Call list, entry and deletion for the current session."""

    def __init__(self, access: AccessControlService, store: DataStore):
        self.access = access
        self.store = store

    def watch_calls(self, handler: CallListHandler) -> Unsubscribe:
        """
        Subscribe to the live call list.

        The returned handle must be called when the owning view closes.

        Raises:
            PermissionDeniedError: If the session lacks canViewCalls
        """
        self.access.require_permission(Capability.VIEW_CALLS)

        def on_value(value: Any) -> None:
            handler(calls_from_snapshot(value))

        return self.store.subscribe(CALLS_PATH, on_value)

    async def record_call(self, fields: CallRecord) -> str:
        """
        Store a new call.

        Args:
            fields: Call form fields

        Returns:
            Key of the new call record

        Raises:
            PermissionDeniedError: If the session lacks canFillForms
        """
        self.access.require_permission(Capability.FILL_FORMS)
        session = self.access.current_session()

        record = dict(fields)
        record.setdefault("agente", session.display_name)
        record["createdAt"] = datetime.now(timezone.utc).isoformat()
        record["createdBy"] = session.uid

        key = await self.store.push(CALLS_PATH, record)
        logger.info(f"Call recorded: {key} by {session.uid}")
        return key

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        self.access.require_permission(Capability.VIEW_CALLS)
        record = await self.store.read(join_path(CALLS_PATH, call_id))
        if not isinstance(record, dict):
            return None
        return {"id": call_id, **record}

    async def delete_call(self, call_id: str) -> None:
        """
        Remove a call record.

        Raises:
            PermissionDeniedError: If the session lacks canDeleteCalls
        """
        self.access.require_permission(Capability.DELETE_CALLS)
        await self.store.remove(join_path(CALLS_PATH, call_id))
        logger.info(f"Call deleted: {call_id} by {self.access.user_id}")
