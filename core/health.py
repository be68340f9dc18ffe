# core/health.py

import asyncio
import logging
from sqlalchemy import text
from typing import Dict
from core.credential_pool import CredentialPool
from flows.database import SessionLocal
from flows.gemini_client import health_check as gemini_health

logger = logging.getLogger(__name__)


def check_database() -> str:
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        return "ok"
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return "fail"


def check_credentials(pool: CredentialPool) -> str:
    return "ok" if pool.count > 0 else "fail"


async def full_health_check(pool: CredentialPool, probe: bool = False) -> Dict:
    """
    Report dependency health. The inference probe spends one request
    against a rotated key, so it only runs when `probe` is set.
    """
    checks = {
        "database": check_database(),
        "credentials": check_credentials(pool),
    }
    if probe:
        checks["gemini"] = gemini_health(pool)

    results = {}
    for name, check in checks.items():
        try:
            if asyncio.iscoroutine(check):
                results[name] = await check
            else:
                results[name] = check
        except Exception:
            results[name] = "fail"

    overall = "ok" if all(v == "ok" for v in results.values()) else "degraded"

    return {
        "status": overall,
        "credentials_configured": pool.count,
        "dependencies": results,
    }
