# meal_planner/config/supabase.py
"""
Supabase connection for the job store.

`SupabaseClient` is built once by the application lifespan from an explicit
`Settings` object and handed to `SupabaseGenerationStore`. Construction never
raises: a missing or malformed configuration leaves `client` as None, which the
store reports as a `StorageError` on first use and `/health` reports as
disconnected.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from supabase import Client, create_client

from meal_planner.config.settings import Settings

logger = logging.getLogger(__name__)

HEALTH_CHECK_TABLE = "meal_generation_jobs"


def _project_host(url: Optional[str]) -> Optional[str]:
    """Host part of a Supabase URL; hosted projects and local `supabase start` both qualify."""
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return parsed.netloc


class SupabaseClient:

    def __init__(self, settings: Settings, client: Optional[Client] = None) -> None:
        self._settings = settings
        self._client: Optional[Client] = client
        if client is None:
            self._client = self._connect()

    def _connect(self) -> Optional[Client]:
        url = self._settings.supabase_url
        key = self._settings.supabase_service_role_key
        if not url or not key:
            logger.debug("Supabase not configured (url set: %s, key set: %s)", bool(url), bool(key))
            return None

        host = _project_host(url)
        if host is None:
            logger.error("SUPABASE_URL %r is not an http(s) URL; job persistence disabled", url)
            return None

        try:
            client = create_client(url, key)
        except Exception as exc:
            logger.exception("Could not create Supabase client for %s: %s", host, exc)
            return None
        logger.info("Supabase client ready (host=%s)", host)
        return client

    @property
    def client(self) -> Optional[Client]:
        return self._client

    def diagnostics(self) -> Dict[str, Any]:
        """Configuration facts only; never credentials."""
        return {
            "configured": bool(self._settings.supabase_url and self._settings.supabase_service_role_key),
            "connected": self._client is not None,
            "host": _project_host(self._settings.supabase_url),
        }

    def health_check(self) -> bool:
        """
        Blocking round trip against the jobs table. Run it in an executor.
        Any exception, error payload or HTTP status >= 400 counts as unhealthy.
        """
        if self._client is None:
            return False
        try:
            res = self._client.table(HEALTH_CHECK_TABLE).select("id").limit(1).execute()
        except Exception as exc:
            logger.exception("Supabase health check against %s failed: %s", HEALTH_CHECK_TABLE, exc)
            return False

        error = getattr(res, "error", None)
        status_code = getattr(res, "status_code", None)
        if error or (isinstance(status_code, int) and status_code >= 400):
            logger.warning("Supabase health check unhealthy: error=%s status=%s", error, status_code)
            return False
        return True

    def close(self) -> None:
        # the sync supabase-py client holds no resources that need an explicit close
        self._client = None
