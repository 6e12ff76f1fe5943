"""
client.py
---------
Minimal GraphQL client for the query node over ``requests``.

Transport problems, non-2xx responses, bodies that are not a JSON object and
GraphQL ``errors`` payloads are all raised as :class:`QueryNodeError`, which
the convergence poller treats as "not converged yet".

``aquery`` runs in worker threads, and ``requests.Session`` is not
thread-safe, so each thread gets its own session unless one is injected.
"""

from __future__ import annotations
import asyncio
import threading
from typing import Any, Callable, Dict, List, Optional

import requests

from query_node_harness import config
from query_node_harness.errors import QueryNodeError


class QueryNodeClient:
    """Executes query documents against one GraphQL endpoint."""

    def __init__(
        self,
        url: str = config.QUERY_NODE_URL,
        *,
        timeout: float = config.QUERY_NODE_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._shared_session = session
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def _session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = self._session_factory()
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run ``document`` and return its ``data`` object."""
        payload = {"query": document, "variables": variables or {}}
        try:
            resp = self._session().post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except Exception as exc:  # noqa: BLE001
            raise QueryNodeError(f"Query node request failed: {exc}") from exc

        if not isinstance(body, dict):
            raise QueryNodeError(f"Query node returned an unexpected body: {body!r}")
        errors = body.get("errors")
        if errors:
            messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            raise QueryNodeError(f"Query node returned errors: {messages}")
        return body.get("data") or {}

    async def aquery(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Same as :meth:`query`, without blocking the event loop."""
        return await asyncio.to_thread(self.query, document, variables)

    def close(self) -> None:
        if self._shared_session is not None:
            self._shared_session.close()
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
