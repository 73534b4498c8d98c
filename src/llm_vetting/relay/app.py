"""FastAPI application for the credential-forwarding relay.

The relay accepts a provider-shaped JSON body plus the caller's key in a
neutral header, re-issues the request with the provider's native auth
header, and streams the response body back as received. It is a
cross-origin workaround, not a security boundary.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from llm_vetting import __version__
from llm_vetting.config.models import ProviderSettings
from llm_vetting.llm.base import StreamingAdapter
from llm_vetting.llm.factory import create_adapter
from llm_vetting.models.enums import ProviderName

logger = logging.getLogger("llm_vetting.relay.app")

RELAYED_PROVIDERS = (ProviderName.OPENAI, ProviderName.ANTHROPIC, ProviderName.DEEPSEEK)


def create_app(client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Create the relay application.

    Args:
        client: HTTP client used to reach providers. One without timeouts
            is created (and closed on shutdown) if omitted.

    Returns:
        Configured FastAPI application
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=None)
    adapters: dict[str, StreamingAdapter] = {
        provider.value: create_adapter(provider, client=http) for provider in RELAYED_PROVIDERS
    }

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_client:
            await http.aclose()

    app = FastAPI(
        title="llm-vetting relay",
        description="Same-origin credential forwarding for streaming completions",
        version=__version__,
        lifespan=lifespan,
    )

    @app.post("/api/relay/{provider}")
    async def relay(
        provider: str,
        request: Request,
        x_user_api_key: Optional[str] = Header(default=None),
    ) -> Response:
        """Forward a completion request to the named provider."""
        adapter = adapters.get(provider)
        if adapter is None:
            raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

        if not x_user_api_key:
            return PlainTextResponse("Missing x-user-api-key", status_code=400)

        headers = {
            "Content-Type": "application/json",
            **adapter.extra_headers(),
            **adapter.auth_headers(x_user_api_key),
        }
        upstream_request = http.build_request(
            "POST",
            adapter.direct_url(ProviderSettings()),
            headers=headers,
            content=await request.body(),
        )

        try:
            upstream = await http.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Relay to {provider} failed: {type(e).__name__}: {e}")
            return PlainTextResponse("Internal server error", status_code=500)

        if not upstream.is_success:
            try:
                content = await upstream.aread()
            except httpx.HTTPError as e:
                logger.error(f"Reading {provider} error body failed: {e}")
                return PlainTextResponse("Internal server error", status_code=500)
            finally:
                await upstream.aclose()
            logger.warning(f"{provider} returned {upstream.status_code}")
            return Response(
                content=content,
                status_code=upstream.status_code,
                media_type=upstream.headers.get("content-type"),
            )

        return StreamingResponse(
            upstream.aiter_bytes(),
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type", "text/event-stream"),
            headers={"Cache-Control": "no-cache"},
            background=BackgroundTask(upstream.aclose),
        )

    return app
