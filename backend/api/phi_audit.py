"""PHI access audit logging.

Records WHO accessed WHICH health data WHEN in the phi_access_log table.
All calls are fire-and-forget: failures are logged but never break request flow.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.concurrency import run_in_threadpool

from api.deps import client_ip
from storage.database import get_db

if TYPE_CHECKING:
    from fastapi import Request

logger = logging.getLogger(__name__)


async def log_phi_access(
    request: "Request",
    action: str,
    resource_type: str,
    resource_id: str | None = None,
) -> None:
    """Insert a PHI access audit log entry (fire-and-forget).

    Args:
        request: The FastAPI request (used to extract user_id, IP, User-Agent).
        action: What was done, e.g. 'view_record', 'delete_record', 'export_account'.
        resource_type: Kind of resource, e.g. 'labs', 'record_request', 'account'.
        resource_id: Id of the accessed row, or None for list and bulk operations.
    """
    try:
        user_id = getattr(request.state, "user_id", None)
        if not user_id:
            return
        await run_in_threadpool(
            get_db().log_phi_access,
            user_id,
            action,
            resource_type,
            resource_id,
            client_ip(request),
            request.headers.get("user-agent"),
        )
    except Exception:
        logger.exception("Failed to write PHI access audit log")
