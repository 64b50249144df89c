import asyncio
from typing import Any, Dict, Optional

import structlog

from wif_broker.modules.identity.domain.service import WorkloadIdentityApp
from wif_broker.schemas.lifecycle import HTTPResponse, SyncResult
from wif_broker.shared.core.config import Settings

logger = structlog.get_logger()


class LocalHost:
    """
    Standalone host runtime for a single installation.

    Plays the dispatcher role around WorkloadIdentityApp: it collects HTTP
    responses by request id, serializes syncs with one lock, and keeps the
    latest produced signals in memory.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.app: Optional[WorkloadIdentityApp] = None
        self.status: Optional[SyncResult] = None
        self.signals: Dict[str, Any] = {}
        self._responses: Dict[str, HTTPResponse] = {}
        self._sync_lock = asyncio.Lock()

    def bind(self, app: WorkloadIdentityApp) -> None:
        self.app = app

    async def respond(self, request_id: str, response: HTTPResponse) -> None:
        self._responses[request_id] = response

    def take_response(self, request_id: str) -> Optional[HTTPResponse]:
        return self._responses.pop(request_id, None)

    async def request_sync(self) -> None:
        await self.sync()

    async def sync(self) -> SyncResult:
        if self.app is None:
            raise RuntimeError("LocalHost.sync called before an app was bound")

        async with self._sync_lock:
            result = await self.app.on_sync(self.settings.installation_config(), self.settings.API_URL)
            self.status = result
            if result.signal_updates:
                self.signals = {**self.signals, **result.signal_updates}

        logger.info(
            "installation_status_changed",
            status=result.new_status.value,
            description=result.custom_status_description,
            signals_updated=bool(result.signal_updates),
        )
        return result
