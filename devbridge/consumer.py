"""
Server-side half of the fake bridge.

Mount BridgeFakeTransport on the httpx client your service uses for outbound
calls, only in the test environment:

    transport = BridgeFakeTransport(FakeStore(Config().fake_config_path))
    client = httpx.Client(transport=transport)

Every request re-reads the fake file, so rules written by the test process
take effect on the next call without restarting the service.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from devbridge.fakes import FakeStore

logger = logging.getLogger("devbridge.consumer")


def build_response(rule: Dict[str, Any], request: httpx.Request) -> httpx.Response:
    """Turn a normalized fake rule into an httpx.Response."""
    headers = dict(rule['headers'])
    body = rule['body']
    if isinstance(body, (bytes, str)):
        content = body.encode('utf-8') if isinstance(body, str) else body
    else:
        content = json.dumps(body).encode('utf-8')
        if not any(name.lower() == 'content-type' for name in headers):
            headers['Content-Type'] = 'application/json'
    return httpx.Response(rule['status'], headers=headers, content=content, request=request)


class BridgeFakeTransport(httpx.BaseTransport):
    """Answers requests matching a fake rule; passes everything else through."""

    def __init__(self, store: FakeStore, transport: Optional[httpx.BaseTransport] = None):
        self.store = store
        self.transport = transport or httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        rule = self.store.match(str(request.url))
        if rule is None:
            return self.transport.handle_request(request)
        logger.debug(f"Faking {request.method} {request.url} -> {rule['status']}")
        return build_response(rule, request)

    def close(self) -> None:
        self.transport.close()


class AsyncBridgeFakeTransport(httpx.AsyncBaseTransport):
    """Async variant of BridgeFakeTransport for httpx.AsyncClient."""

    def __init__(self, store: FakeStore, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.store = store
        self.transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        rule = self.store.match(str(request.url))
        if rule is None:
            return await self.transport.handle_async_request(request)
        logger.debug(f"Faking {request.method} {request.url} -> {rule['status']}")
        return build_response(rule, request)

    async def aclose(self) -> None:
        await self.transport.aclose()
