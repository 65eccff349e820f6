"""Loopback presentation context.

Presents provider consent screens in the system browser and receives the
authorization redirect on a short-lived local HTTP server
(http://127.0.0.1:<port>/callback), the installed-app OAuth pattern.

The redirect URI must be registered with each provider.
"""

import asyncio
import logging
import socket
import webbrowser
from typing import Any, Callable, Mapping

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from identity_bridge.core.auth.provider import (
    AuthorizationRequest,
    AuthorizationResponse,
    PresentationContext,
)

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"

SUCCESS_PAGE = """<!doctype html>
<html><body><h3>Sign-in complete</h3><p>You can close this window.</p></body></html>"""

FAILURE_PAGE = """<!doctype html>
<html><body><h3>Sign-in was not completed</h3><p>You can close this window.</p></body></html>"""


def build_callback_app(future: asyncio.Future) -> FastAPI:
    """Build the ASGI app receiving the authorization redirect.

    The first redirect resolves ``future`` with an AuthorizationResponse;
    later requests are answered but ignored.

    Args:
        future: Future to resolve with the received parameters

    Returns:
        FastAPI application serving CALLBACK_PATH (GET and form_post)
    """
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    def complete(params: Mapping[str, Any]) -> HTMLResponse:
        response = AuthorizationResponse(
            **{
                field: params.get(field)
                for field in AuthorizationResponse.model_fields
                if isinstance(params.get(field), str)
            }
        )
        if not future.done():
            future.set_result(response)
            logger.debug("Authorization redirect received")
        else:
            logger.debug("Ignoring duplicate authorization redirect")

        if response.error:
            return HTMLResponse(FAILURE_PAGE, status_code=400)
        return HTMLResponse(SUCCESS_PAGE)

    @app.get(CALLBACK_PATH)
    async def callback(request: Request):
        return complete(request.query_params)

    @app.post(CALLBACK_PATH)
    async def callback_form_post(request: Request):
        form = await request.form()
        return complete(form)

    return app


class LoopbackPresentationContext(PresentationContext):
    """Opens the authorization URL in a browser and waits for the redirect."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8765,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ):
        """Initialize loopback context.

        Args:
            host: Interface to listen on
            port: Port to listen on (must match the registered redirect URI)
            open_browser: Callable opening a URL for the user
        """
        self.host = host
        self.port = port
        self.open_browser = open_browser

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{CALLBACK_PATH}"

    async def present(self, request: AuthorizationRequest) -> AuthorizationResponse:
        """Open the consent screen and wait for the provider redirect.

        Raises:
            OSError: If the loopback port cannot be bound
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        # Bind up front so port conflicts surface here instead of inside uvicorn
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise

        config = uvicorn.Config(
            build_callback_app(future),
            log_level="warning",
            lifespan="off",
        )
        server = uvicorn.Server(config)
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))

        try:
            while not server.started and not serve_task.done():
                await asyncio.sleep(0.05)
            if not server.started:
                raise OSError(f"Loopback server failed to start on {self.redirect_uri}")
            logger.info(f"Waiting for authorization redirect on {self.redirect_uri}")
            self.open_browser(request.url)
            return await future
        finally:
            server.should_exit = True
            await serve_task
            sock.close()
