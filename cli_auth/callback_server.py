"""
Local callback listener for the browser login.
Binds 127.0.0.1 on an OS-assigned port, serves GET /callback on a background uvicorn thread,
and hands the first result (Credentials or CallbackError) to the waiting caller through a
single-slot queue. Later deliveries are dropped without blocking.
No state parameter is checked: any request to /callback is taken as authoritative.
"""
import html
import logging
import queue
import socket
import threading
import time

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from cli_auth.config import DEFAULT_EXPIRES_IN, SHUTDOWN_GRACE_SECONDS
from cli_auth.errors import CallbackError, ListenerBindError
from cli_auth.token_store import Credentials

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
LISTEN_HOST = "127.0.0.1"

# Upper bound on waiting for uvicorn to report started
STARTUP_TIMEOUT_SECONDS = 10.0

# Fragments never reach the server, so bounce them back as a query string
EXTRACT_FRAGMENT_HTML = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Completing authentication</title></head>
<body>
  <h1>Completing authentication...</h1>
  <p id="status">Please wait.</p>
  <script>
    const hash = window.location.hash.substring(1);
    const params = new URLSearchParams(hash);
    if (params.get('access_token') || params.get('error')) {
      window.location.replace('/callback?' + params.toString());
    } else {
      document.getElementById('status').textContent =
        'No credentials were found in the redirect. Return to your terminal and try again.';
    }
  </script>
</body>
</html>"""

SUCCESS_HTML = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Authentication successful</title></head>
<body>
  <h1>Authentication successful</h1>
  <p>Return to your terminal to continue. You can safely close this window.</p>
</body>
</html>"""


def _error_html(message: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Authentication failed</title></head>
<body>
  <h1>Authentication failed</h1>
  <p>{html.escape(message)}</p>
  <p>Return to your terminal and try again.</p>
</body>
</html>"""


def parse_expires_in(value: str | None) -> int:
    """expires_in in seconds; DEFAULT_EXPIRES_IN when absent or not an integer."""
    if not value:
        return DEFAULT_EXPIRES_IN
    try:
        return int(value.strip())
    except ValueError:
        return DEFAULT_EXPIRES_IN


def deliver(results: queue.Queue, item) -> bool:
    """Non-blocking put; False if a result was already delivered for this flow."""
    try:
        results.put_nowait(item)
        return True
    except queue.Full:
        logger.debug("Callback result already delivered; dropping %s", type(item).__name__)
        return False


def create_callback_app(results: queue.Queue) -> FastAPI:
    """App with the single /callback route writing into results."""
    app = FastAPI(title="CLI login callback", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(CALLBACK_PATH, response_class=HTMLResponse)
    def callback(request: Request):
        """
        Query carries access_token: record it and show success.
        Query carries error: record a CallbackError and show it.
        Neither: serve the page that re-sends the URL fragment as a query.
        """
        params = request.query_params
        access_token = params.get("access_token", "")
        if access_token:
            creds = Credentials()
            creds.set_tokens(
                access_token=access_token,
                refresh_token=params.get("refresh_token", ""),
                expires_in=parse_expires_in(params.get("expires_in")),
            )
            deliver(results, creds)
            return HTMLResponse(SUCCESS_HTML)

        error = params.get("error", "")
        if error:
            description = params.get("error_description", "") or error
            logger.debug("Callback delivered error: %s", error)
            deliver(results, CallbackError(description))
            return HTMLResponse(_error_html(description), status_code=400)

        return HTMLResponse(EXTRACT_FRAGMENT_HTML)

    return app


class CallbackServer:
    """
    One-shot listener. start() binds and returns the port; shutdown() is idempotent.
    Usable as a context manager so teardown happens on every exit path.
    """

    def __init__(self, host: str = LISTEN_HOST, grace_seconds: float = SHUTDOWN_GRACE_SECONDS):
        self.host = host
        self.grace_seconds = grace_seconds
        self.results: queue.Queue = queue.Queue(maxsize=1)
        self.app = create_callback_app(self.results)
        self.port = 0
        self._sock: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def callback_url(self) -> str:
        return f"http://localhost:{self.port}{CALLBACK_PATH}"

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> int:
        """Bind port 0, start serving, and return only once uvicorn accepts connections."""
        sock = None
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.bind((self.host, 0))
            sock.listen(16)
        except OSError as e:
            if sock is not None:
                sock.close()
            raise ListenerBindError(str(e)) from e

        self._sock = sock
        self.port = sock.getsockname()[1]
        config = uvicorn.Config(
            self.app,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=int(self.grace_seconds),
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._serve, args=(self._server, sock), name="cli-auth-callback", daemon=True
        )
        self._thread.start()

        deadline = time.monotonic() + STARTUP_TIMEOUT_SECONDS
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.shutdown()
                raise ListenerBindError("callback server did not start")
            time.sleep(0.01)
        logger.debug("Callback server listening on %s:%s", self.host, self.port)
        return self.port

    def _serve(self, server: uvicorn.Server, sock: socket.socket) -> None:
        try:
            server.run(sockets=[sock])
        except Exception as e:
            logger.debug("Callback server stopped with error: %s", e)
            deliver(self.results, CallbackError(f"callback server error: {e}"))

    def shutdown(self) -> None:
        """Stop serving; in-flight requests get grace_seconds before the server is forced down."""
        server, thread, sock = self._server, self._thread, self._sock
        self._server = self._thread = self._sock = None
        if server is None:
            return
        server.should_exit = True
        if thread is not None:
            thread.join(timeout=self.grace_seconds + 1)
            if thread.is_alive():
                logger.warning("Callback server did not stop within %ss; forcing exit", self.grace_seconds)
                server.force_exit = True
                thread.join(timeout=1)
        if sock is not None:
            sock.close()
        logger.debug("Callback server on port %s stopped", self.port)

    def __enter__(self) -> "CallbackServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
