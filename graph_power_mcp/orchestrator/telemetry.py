"""Fire-and-forget custom events for Application Insights.

Events are posted from background tasks the request path never awaits, and
every failure is dropped after a debug log line. With no connection string
the client does nothing.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Set

DEFAULT_INGESTION_ENDPOINT = "https://dc.services.visualstudio.com"


def parse_connection_string(connection_string: str) -> Dict[str, str]:
    """Split `Key=Value;Key=Value` into a dict with lowercase keys."""
    parts = {}
    for segment in (connection_string or "").split(";"):
        if "=" not in segment:
            continue
        key, value = segment.split("=", 1)
        if key.strip():
            parts[key.strip().lower()] = value.strip()
    return parts


class TelemetryClient:
    """Sends Application Insights EventData envelopes

    Args:
        http_client: Object with an async `request(method, url, headers, json_body)`
        connection_string: Application Insights connection string; empty disables sending
    """

    def __init__(self, http_client, connection_string: str = ""):
        self.http = http_client
        parts = parse_connection_string(connection_string)
        self.instrumentation_key = parts.get("instrumentationkey", "")
        endpoint = parts.get("ingestionendpoint") or DEFAULT_INGESTION_ENDPOINT
        self.track_url = f"{endpoint.rstrip('/')}/v2/track"
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.instrumentation_key)

    def build_envelope(self, name: str, properties: Optional[Dict[str, object]] = None) -> Dict[str, object]:
        return {
            "name": f"Microsoft.ApplicationInsights.{self.instrumentation_key.replace('-', '')}.Event",
            "time": datetime.now(timezone.utc).isoformat(),
            "iKey": self.instrumentation_key,
            "data": {
                "baseType": "EventData",
                "baseData": {
                    "ver": 2,
                    "name": name,
                    "properties": {k: str(v) for k, v in (properties or {}).items() if v is not None},
                },
            },
        }

    async def _send(self, envelope: Dict[str, object]) -> None:
        try:
            response = await self.http.request(
                "POST",
                self.track_url,
                headers={"Content-Type": "application/json"},
                json_body=[envelope],
            )
            if not response.ok:
                logging.debug(f"[Telemetry] Ingestion returned {response.status}")
        except Exception as exc:
            logging.debug(f"[Telemetry] Dropped event: {exc}")

    def track_event(self, name: str, properties: Optional[Dict[str, object]] = None) -> None:
        """Schedule an event without waiting for it to be sent"""
        if not self.enabled:
            return
        try:
            envelope = self.build_envelope(name, properties)
            task = asyncio.get_running_loop().create_task(self._send(envelope))
        except Exception as exc:
            logging.debug(f"[Telemetry] Could not schedule event '{name}': {exc}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for events that are still being sent"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = [
    "parse_connection_string",
    "TelemetryClient",
]
