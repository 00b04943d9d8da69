"""Service lifecycle: bind, serve, drain, stop.

State machine::

    STARTING -> BOUND -> SERVING -> DRAINING -> STOPPED
        \\-> FAILED

The listening socket is created in :meth:`Application.build` and owned by
the application until it is released, exactly once, at the end of
:meth:`Application.serve`.  A stop request (SIGINT, SIGTERM or
:meth:`Application.shutdown`) is an :class:`asyncio.Event` the serving
coroutine waits on; repeated requests are no-ops.

INVARIANT: No new connection is accepted once DRAINING is entered.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import socket
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from icaliada.errors import BindError
from icaliada.service.handlers import ConnectionHandler, hold_until_eof

if TYPE_CHECKING:
    from icaliada.config.settings import AppSettings

log = structlog.get_logger(__name__)

_BACKLOG = 128
_ACCEPT_RETRY_DELAY = 0.1
_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ServiceState(StrEnum):
    STARTING = "starting"
    BOUND = "bound"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"
    FAILED = "failed"


_TRANSITIONS: dict[ServiceState, frozenset[ServiceState]] = {
    ServiceState.STARTING: frozenset({ServiceState.BOUND, ServiceState.FAILED}),
    ServiceState.BOUND: frozenset({ServiceState.SERVING}),
    ServiceState.SERVING: frozenset({ServiceState.DRAINING}),
    ServiceState.DRAINING: frozenset({ServiceState.STOPPED}),
    ServiceState.STOPPED: frozenset(),
    ServiceState.FAILED: frozenset(),
}


def _bind(host: str, port: int) -> socket.socket:
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
        family = infos[0][0]
        sock = socket.create_server((host, port), family=family, backlog=_BACKLOG)
    except OSError as exc:
        raise BindError(host, port, exc) from exc
    sock.setblocking(False)
    return sock


class Application:
    """A bound listener plus the lifecycle around it.

    Use :meth:`build` to bind, then ``await serve()`` to run until a stop
    request.  :meth:`shutdown` must be called from the event loop thread;
    other threads go through ``loop.call_soon_threadsafe(app.shutdown)``.

    Attributes:
        config: The effective settings; never re-read after startup.
        history: Every state entered, in order.
    """

    def __init__(self, config: AppSettings, handler: ConnectionHandler | None = None) -> None:
        self.config = config
        self.state = ServiceState.STARTING
        self.history: list[ServiceState] = [self.state]
        self._handler = handler or hold_until_eof
        self._sock: socket.socket | None = None
        self._port: int | None = None
        self._stop: asyncio.Event | None = None
        self._stop_requested = False
        self._connections: set[asyncio.Task[None]] = set()
        self._accepting = False
        self._retry: asyncio.TimerHandle | None = None
        self._release_count = 0

    def __repr__(self) -> str:
        return f"Application(state={self.state.value!r}, port={self._port!r})"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, config: AppSettings, handler: ConnectionHandler | None = None) -> Application:
        """Bind the listener described by ``config.server``.

        Raises:
            BindError: the address could not be resolved or bound.
        """
        app = cls(config, handler)
        host, port = config.server.host, config.server.port
        try:
            app._sock = _bind(host, port)
        except BindError as exc:
            app._transition(ServiceState.FAILED)
            log.error("listener.bind_failed", host=host, port=port, error=str(exc.cause))
            raise
        app._port = app._sock.getsockname()[1]
        app._transition(ServiceState.BOUND)
        log.info("listener.bound", host=host, port=app._port)
        return app

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def port(self) -> int | None:
        """The port actually bound, or None if binding failed."""
        return self._port

    @property
    def release_count(self) -> int:
        """How many times the listener has been released (0 or 1)."""
        return self._release_count

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    def shutdown(self) -> None:
        """Request a graceful stop.  Only the first request has an effect."""
        if self._stop_requested:
            log.info("shutdown.already_requested", state=self.state.value)
            return
        self._stop_requested = True
        log.info("shutdown.requested", state=self.state.value)
        if self._stop is not None:
            self._stop.set()

    async def serve(self) -> int:
        """Accept connections until a stop request, then drain and release.

        Returns the process exit code (0).  A drain timeout is not an
        error: leftover connections are cancelled and a warning is logged.
        """
        self._transition(ServiceState.SERVING)
        loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()
        if self._stop_requested:
            self._stop.set()

        installed = self._install_signal_handlers(loop)
        self._start_accepting()
        log.info("service.serving", port=self._port)
        try:
            await self._stop.wait()
            self._transition(ServiceState.DRAINING)
            self._stop_accepting()
            log.info("listener.accept_stopped", in_flight=len(self._connections))
            await self._drain()
        finally:
            self._stop_accepting()
            await self._cancel_connections()
            self._release_listener()
            for sig in installed:
                loop.remove_signal_handler(sig)

        self._transition(ServiceState.STOPPED)
        log.info("service.stopped")
        return 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, target: ServiceState) -> None:
        if target not in _TRANSITIONS[self.state]:
            msg = f"Illegal state transition {self.state.value} -> {target.value}"
            raise RuntimeError(msg)
        log.debug("service.state", previous=self.state.value, state=target.value)
        self.state = target
        self.history.append(target)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[int]:
        installed: list[int] = []
        for sig in _STOP_SIGNALS:
            # Unsupported on Windows loops and outside the main thread.
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.add_signal_handler(sig, self._on_signal, sig)
                installed.append(sig)
        return installed

    def _on_signal(self, sig: int) -> None:
        log.info("signal.received", signal=signal.Signals(sig).name)
        self.shutdown()

    def _start_accepting(self) -> None:
        assert self._sock is not None
        asyncio.get_running_loop().add_reader(self._sock.fileno(), self._accept_ready)
        self._accepting = True

    def _pause_accepting(self) -> None:
        assert self._sock is not None
        asyncio.get_running_loop().remove_reader(self._sock.fileno())
        self._accepting = False

    def _resume_accepting(self) -> None:
        self._retry = None
        if self.state is ServiceState.SERVING and self._sock is not None:
            self._start_accepting()

    def _stop_accepting(self) -> None:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        if self._accepting:
            self._pause_accepting()

    def _accept_ready(self) -> None:
        # Every accepted socket is handed to a task before this returns;
        # nothing is awaited between accept() and create_task().
        assert self._sock is not None
        for _ in range(_BACKLOG):
            try:
                conn, peer = self._sock.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError as exc:
                # EMFILE and friends are transient; back off, keep the listener.
                log.warning("listener.accept_failed", error=str(exc))
                self._pause_accepting()
                self._retry = asyncio.get_running_loop().call_later(
                    _ACCEPT_RETRY_DELAY, self._resume_accepting
                )
                return
            conn.setblocking(False)
            task = asyncio.create_task(self._serve_connection(conn, peer))
            self._connections.add(task)
            task.add_done_callback(self._connections.discard)

    async def _serve_connection(self, conn: socket.socket, peer: object) -> None:
        try:
            reader, writer = await asyncio.open_connection(sock=conn)
        except OSError as exc:
            conn.close()
            log.warning("connection.setup_failed", peer=str(peer), error=str(exc))
            return

        log.debug("connection.accepted", peer=str(peer))
        try:
            await self._handler(reader, writer)
        except asyncio.CancelledError:
            log.debug("connection.cancelled", peer=str(peer))
            raise
        except Exception:
            log.exception("connection.handler_failed", peer=str(peer))
        finally:
            writer.close()

    async def _drain(self) -> None:
        pending = set(self._connections)
        if not pending:
            return
        timeout = self.config.server.drain_timeout
        log.info("shutdown.draining", in_flight=len(pending), timeout=timeout)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            log.warning("shutdown.drain_timeout", abandoned=len(still_running), timeout=timeout)

    async def _cancel_connections(self) -> None:
        leftover = [task for task in self._connections if not task.done()]
        for task in leftover:
            task.cancel()
        if leftover:
            await asyncio.gather(*leftover, return_exceptions=True)

    def _release_listener(self) -> None:
        if self._sock is None:
            return
        sock, self._sock = self._sock, None
        sock.close()
        self._release_count += 1
        log.info("listener.released", port=self._port)


def run(config: AppSettings, handler: ConnectionHandler | None = None) -> int:
    """Bind, serve until stopped, and return the exit code.

    Raises:
        BindError: the listener could not be bound; nothing was served.
    """
    app = Application.build(config, handler)
    return asyncio.run(app.serve())
