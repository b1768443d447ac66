# civic_dispatch/infra/http_client.py
"""
Shared HTTP client sessions for the application.

Provides named, lazy-initialized aiohttp.ClientSession singletons
so a dispatch round reuses TCP connections across its parallel
submissions instead of opening a session per target.

Session profiles
~~~~~~~~~~~~~~~~
- **sender**  – outbound issue submissions (total=30 s, connect=5 s, pool limit=20)

Per-request timeouts passed to ``session.post`` override the profile.

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from civic_dispatch.infra.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Internal state
# ---------------------------------------------------------------------------

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug(f"HTTP session '{name}' created (limit={limit})")
    return session


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_sender_session() -> aiohttp.ClientSession:
    """Session for outbound issue submissions."""
    return _get_or_create(
        "sender",
        aiohttp.ClientTimeout(total=30, connect=5),
        limit=20,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug(f"HTTP session '{name}' closed")
