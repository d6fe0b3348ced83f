"""Security audit events.

Every gateway denial emits exactly one event through this module. The
logger name ``access_guard.security`` lets deployments route these
events to a dedicated sink.
"""

from __future__ import annotations

from typing import Any

import structlog

security_logger = structlog.get_logger("access_guard.security")


def log_security_event(
    event: str,
    *,
    path: str,
    client_ip: str,
    user_id: str | None = None,
    denied: bool = True,
    **details: Any,
) -> None:
    """Record a security-relevant event with subject and origin."""
    log = security_logger.warning if denied else security_logger.info
    log(
        event,
        security=True,
        path=path,
        client_ip=client_ip,
        user_id=user_id,
        **{k: v for k, v in details.items() if v is not None},
    )
