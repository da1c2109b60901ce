"""HTTP transport host for the RPC dispatcher.

Serves ``POST /rpc/<Operation>`` with a JSON object body using Python's
built-in http.server. Every request is handled on its own thread; the
service coroutine runs on the event loop that started the server.

Callers may bound a call with an ``X-Request-Timeout`` header (seconds).
When the deadline passes the in-flight store call is cancelled and the
reply is a ``deadline_exceeded`` error.
"""

import asyncio
import concurrent.futures
import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from planner.adapters.rpc.dispatcher import RPCDispatcher, UnknownOperationError
from planner.core.errors import (
    DeadlineExceededError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PlannerError,
)

logger = logging.getLogger(__name__)

RPC_PREFIX = "/rpc/"
TIMEOUT_HEADER = "X-Request-Timeout"
MAX_BODY_SIZE = 1024 * 1024


class BindError(OSError):
    """Raised when the server cannot listen on the requested address."""


class _RPCHTTPServer(ThreadingHTTPServer):
    # Non-daemon request threads are joined by server_close(), which is
    # what lets stop() wait for in-flight calls.
    daemon_threads = False
    block_on_close = True


async def _invoke(
    dispatcher: RPCDispatcher, operation: str, data: Any, timeout: float
) -> dict[str, Any]:
    try:
        return await asyncio.wait_for(dispatcher.dispatch(operation, data), timeout)
    except asyncio.TimeoutError as e:
        raise DeadlineExceededError(
            f"{operation} did not complete within {timeout:g}s"
        ) from e


def make_rpc_handler(
    dispatcher: RPCDispatcher,
    event_loop: asyncio.AbstractEventLoop,
    default_timeout: float,
) -> type[BaseHTTPRequestHandler]:
    """Factory to create an RPCHTTPHandler class bound to one dispatcher.

    Args:
        dispatcher: Operation table serving the requests.
        event_loop: Loop the service coroutines run on.
        default_timeout: Deadline in seconds when the caller sends none.

    Returns:
        A BaseHTTPRequestHandler subclass.
    """

    class RPCHTTPHandler(BaseHTTPRequestHandler):
        """HTTP request handler for RPC endpoints."""

        def do_POST(self) -> None:
            if not self.path.startswith(RPC_PREFIX):
                self._send_error(404, NotFoundError(f"unknown path: {self.path}"))
                return

            operation = self.path[len(RPC_PREFIX):]
            if not dispatcher.has_operation(operation):
                self._send_error(404, NotFoundError(f"unknown operation: {operation}"))
                return

            try:
                timeout = self._request_timeout()
            except InvalidArgumentError as e:
                self._send_error(400, e)
                return

            try:
                content_length = int(self.headers.get("Content-Length", 0) or 0)
            except ValueError:
                content_length = -1
            if content_length < 0:
                self._send_error(400, InvalidArgumentError("invalid Content-Length"))
                return
            if content_length > MAX_BODY_SIZE:
                self._send_error(413, InvalidArgumentError("request body too large"))
                return

            body = self.rfile.read(content_length) if content_length > 0 else b""
            try:
                data = json.loads(body) if body else {}
            except json.JSONDecodeError:
                self._send_error(400, InvalidArgumentError("invalid JSON body"))
                return

            self._run(operation, data, timeout)

        def do_GET(self) -> None:
            if self.path == "/health":
                self._send_json(200, {"status": "healthy"})
            else:
                self._send_error(404, NotFoundError(f"unknown path: {self.path}"))

        def _request_timeout(self) -> float:
            raw = self.headers.get(TIMEOUT_HEADER)
            if raw is None:
                return default_timeout
            try:
                timeout = float(raw)
            except ValueError:
                raise InvalidArgumentError(f"{TIMEOUT_HEADER} must be a number") from None
            if timeout <= 0:
                raise InvalidArgumentError(f"{TIMEOUT_HEADER} must be positive")
            return timeout

        def _run(self, operation: str, data: Any, timeout: float) -> None:
            """Run the operation on the event loop and write its reply."""
            future = asyncio.run_coroutine_threadsafe(
                _invoke(dispatcher, operation, data, timeout), event_loop
            )
            try:
                # Grace period covers the loop being busy when the deadline fires.
                result = future.result(timeout=timeout + 5)
            except PlannerError as e:
                if isinstance(e, InternalError):
                    logger.error(f"{operation} failed: {e.message}")
                self._send_error(e.http_status, e)
                return
            except UnknownOperationError:
                self._send_error(404, NotFoundError(f"unknown operation: {operation}"))
                return
            except concurrent.futures.CancelledError:
                self._send_error(
                    504, DeadlineExceededError(f"{operation} was cancelled")
                )
                return
            except concurrent.futures.TimeoutError:
                future.cancel()
                self._send_error(
                    504, DeadlineExceededError(f"{operation} did not complete in time")
                )
                return
            except Exception as e:
                # Log full exception server-side, return generic error to client
                logger.error(f"Error handling {operation}: {e}", exc_info=True)
                self._send_error(500, InternalError("internal server error"))
                return
            self._send_json(200, result)

        def _send_error(self, status: int, error: PlannerError) -> None:
            self._send_json(status, error.to_response())

        def _send_json(self, status: int, data: dict[str, Any]) -> None:
            body = json.dumps(data).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: Any) -> None:
            logger.debug(f"HTTP {self.client_address[0]}: {format % args}")

    return RPCHTTPHandler


class RPCServer:
    """Transport host binding the entity services to one listening endpoint."""

    def __init__(self, dispatcher: RPCDispatcher, default_timeout: float = 30.0):
        """Initialize the server.

        Args:
            dispatcher: RPCDispatcher serving the operations.
            default_timeout: Per-call deadline in seconds when the caller
                sends no X-Request-Timeout header.
        """
        self.dispatcher = dispatcher
        self.default_timeout = default_timeout
        self.server: ThreadingHTTPServer | None = None
        self._server_task: asyncio.Task[None] | None = None
        self._stopped = False

    async def start(self, address: str) -> str:
        """Bind to ``host:port`` and begin accepting calls.

        Port 0 binds an ephemeral port.

        Returns:
            The bound address as ``host:port``.

        Raises:
            BindError: If the address is malformed or cannot be bound.
            RuntimeError: If the server was already started.
        """
        if self.server is not None:
            raise RuntimeError("RPC server already started")

        host, _, port_text = address.rpartition(":")
        try:
            port = int(port_text)
        except ValueError:
            raise BindError(f"invalid listen address: {address}") from None
        if not 0 <= port <= 65535:
            raise BindError(f"invalid listen address: {address}")

        handler_class = make_rpc_handler(
            dispatcher=self.dispatcher,
            event_loop=asyncio.get_running_loop(),
            default_timeout=self.default_timeout,
        )
        try:
            self.server = _RPCHTTPServer((host or "0.0.0.0", port), handler_class)
        except (OSError, OverflowError) as e:
            raise BindError(f"failed to listen on {address}: {e}") from e

        self._server_task = asyncio.create_task(self._run_server())
        logger.info(f"RPC server listening on {self.address()}")
        return self.address()

    async def _run_server(self) -> None:
        """Run the blocking serve loop in a worker thread."""
        if not self.server:
            return
        try:
            await asyncio.to_thread(self.server.serve_forever)
        except Exception as e:
            logger.error(f"RPC server error: {e}", exc_info=True)

    async def stop(self) -> None:
        """Stop accepting calls, wait for in-flight calls, then close.

        Idempotent.
        """
        if self.server is None or self._stopped:
            return
        self._stopped = True
        logger.info("Stopping RPC server...")

        # shutdown() and server_close() block; in-flight handlers still need
        # this loop to finish, so they must not run on it.
        await asyncio.to_thread(self._shutdown_and_drain, self.server)
        if self._server_task is not None:
            await self._server_task
        logger.info("RPC server stopped")

    @staticmethod
    def _shutdown_and_drain(server: ThreadingHTTPServer) -> None:
        server.shutdown()
        server.server_close()

    def address(self) -> str:
        """Bound ``host:port``, or "" before start."""
        if self.server is None:
            return ""
        host, port = self.server.server_address[:2]
        return f"{host}:{port}"
