"""Fake remote sync API for testing.

FakeSyncBackend is an httpx.MockTransport handler: it records every request
it receives and answers the way a test configured it. By default it accepts
every note it is sent.

Design principles:
- Never mock SQLite; always use a real database file under tmp_path
- Never touch the network; every request goes through MockTransport
- Inspectable: test code can read back exactly what was sent
"""
import json
from typing import Any, Callable, Dict, List, Optional, Set

import httpx

TEST_API_URL = "http://sync.test"


class FakeSyncBackend:
    """Configurable stand-in for ``POST /api/sync``."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.reject_ids: Set[int] = set()
        self.extra_synced_ids: List[int] = []
        self.status_code = 200
        self.raw_body: Optional[str] = None
        self.message: Optional[str] = None
        self.error: Optional[Callable[[httpx.Request], Exception]] = None
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    # -- configuration helpers -------------------------------------------

    def reject(self, *ids: int) -> None:
        """Report these ids as failed."""
        self.reject_ids.update(ids)

    def go_offline(self) -> None:
        """Fail every request as if the host were unreachable."""
        self.error = lambda request: httpx.ConnectError(
            "Connection refused", request=request
        )

    def time_out(self) -> None:
        """Fail every request with a read timeout."""
        self.error = lambda request: httpx.ReadTimeout("timed out", request=request)

    # -- inspection ------------------------------------------------------

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def sent_notes(self, index: int = -1) -> List[Dict[str, Any]]:
        """Notes carried by a recorded request (the last one by default)."""
        return json.loads(self.requests[index].content)["notes"]

    # -- transport handler -----------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        if self.error is not None:
            raise self.error(request)
        if self.raw_body is not None:
            return httpx.Response(self.status_code, text=self.raw_body)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"error": "backend failure"})

        ids = [note["id"] for note in json.loads(request.content)["notes"]]
        body: Dict[str, Any] = {
            "syncedIds": [i for i in ids if i not in self.reject_ids]
            + self.extra_synced_ids,
            "failedIds": [i for i in ids if i in self.reject_ids],
        }
        if self.message is not None:
            body["message"] = self.message
        return httpx.Response(self.status_code, json=body)
