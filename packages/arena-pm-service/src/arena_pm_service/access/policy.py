"""Per-gate failure policy.

Each gate declares what happens when its own machinery fails (a datastore
error, a bug) as opposed to a deliberate denial. Denials are ``AppError``
and always propagate. Other failures either let the request through
(``OPEN``) or end it with a 500 (``CLOSED``).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import structlog

from arena_pm_service.errors import AppError

logger = structlog.get_logger()

T = TypeVar("T")


class FailurePolicy(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


GATE_POLICIES: dict[str, FailurePolicy] = {
    "session": FailurePolicy.CLOSED,
    "workspace_role": FailurePolicy.CLOSED,
    "task_limit": FailurePolicy.OPEN,
    "member_limit": FailurePolicy.OPEN,
    "workspace_limit": FailurePolicy.OPEN,
    "billing": FailurePolicy.OPEN,
}

# User-facing message for gates that fail closed.
CLOSED_MESSAGES: dict[str, str] = {
    "session": "Authentication error",
    "workspace_role": "Error verifying workspace role",
}


async def run_gate(name: str, check: Callable[[], Awaitable[T]]) -> T | None:
    """Run a gate body under its failure policy.

    Returns the body's result, or None when an open gate swallowed a failure.
    """
    policy = GATE_POLICIES[name]
    try:
        return await check()
    except AppError:
        raise
    except Exception as exc:
        if policy is FailurePolicy.OPEN:
            logger.error("gate_failed_open", gate=name, error=str(exc))
            return None
        logger.error("gate_failed_closed", gate=name, error=str(exc))
        raise AppError.internal(
            CLOSED_MESSAGES.get(name, "Internal server error"), internal_message=str(exc)
        ) from exc
