# core/http_client.py
import asyncio
import logging
import httpx
from weakref import WeakKeyDictionary

from core.config import GEMINI_TIMEOUT

logger = logging.getLogger(__name__)

# One transport per event loop, shared by every per-credential SDK client
_clients: WeakKeyDictionary = WeakKeyDictionary()


def get_client() -> httpx.AsyncClient:
    """
    Return the AsyncClient bound to the current running event loop.

    The inference SDK builds a lightweight client per credential attempt;
    they all reuse this connection pool instead of opening their own.
    """
    loop = asyncio.get_running_loop()

    client = _clients.get(loop)
    if client is not None and not client.is_closed:
        return client

    timeout = httpx.Timeout(
        connect=5.0,
        read=GEMINI_TIMEOUT,
        write=5.0,
        pool=5.0
    )

    limits = httpx.Limits(
        max_connections=50,
        max_keepalive_connections=10
    )

    client = httpx.AsyncClient(timeout=timeout, limits=limits)
    _clients[loop] = client
    return client


async def close_client():
    """
    Gracefully close all AsyncClient instances.
    Call this during application shutdown.
    """
    for client in list(_clients.values()):
        try:
            await client.aclose()
        except Exception:
            logger.debug("http client close failed", exc_info=True)

    _clients.clear()
