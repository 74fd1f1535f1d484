"""Outbound HTTP for Graph and telemetry.

The orchestrator only talks to the network through an object with an async
`request` method returning an HttpResponse, so tests can swap in a scripted
client.
"""

import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from .models import HttpResponse


class AiohttpClient:
    """HTTP client backed by a short-lived aiohttp session per request

    Args:
        timeout: Total timeout in seconds for each request
    """

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json_body: Any = None,
    ) -> HttpResponse:
        """Send one request and return the status, headers and decoded body

        Raises:
            aiohttp.ClientError: On connection failures
            asyncio.TimeoutError: When the request exceeds the timeout
        """
        headers = dict(headers or {})
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        if json_body is not None:
            headers.setdefault("Content-Type", "application/json")

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(method, url, json=json_body, headers=headers) as response:
                return await self._process_response(response)

    async def _process_response(self, response: aiohttp.ClientResponse) -> HttpResponse:
        headers = {k.lower(): v for k, v in response.headers.items()}
        text = await response.text()

        body: Any = None
        if text:
            if response.content_type and "json" in response.content_type:
                try:
                    body = json.loads(text)
                except ValueError:
                    logging.warning(f"[HttpClient] Response from {response.url} declared JSON but did not parse")
                    body = text
            else:
                body = text

        logging.debug(f"[HttpClient] {response.method} {response.url} -> {response.status}")
        return HttpResponse(status=response.status, headers=headers, body=body)


__all__ = ["AiohttpClient"]
