"""Listener coordination and process shutdown."""

import enum
import queue
import signal
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from staticsite.bootstrap.config import ServerConfig
from staticsite.domain.correlation_id import CorrelationLoggerAdapter, component_logger
from staticsite.domain.http_types import Handler
from staticsite.tls.certificates import TLSConfig, provide_tls_config
from staticsite.transport.listener import Listener

LIFECYCLE_LOGGER = component_logger("lifecycle")

CHALLENGE_LISTENER = "acme-challenge"
TLS_LISTENER = "https"


class CoordinatorState(enum.Enum):
    PROVISIONING = "provisioning"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    FAILED = "failed"


class ListenerError(Exception):
    """Raised when a listener terminates with an error."""


@dataclass(frozen=True)
class ShutdownRequested:
    signum: int

    @property
    def signal_name(self) -> str:
        try:
            return signal.Signals(self.signum).name
        except ValueError:
            return str(self.signum)


Outcome = Union[None, BaseException, ShutdownRequested]


class ListenerCoordinator:
    """Runs the challenge and TLS listeners until one ends or a signal arrives.

    The first outcome reported on the completion queue decides the result:
    a shutdown request or a clean listener stop returns 0, a listener error
    raises ``ListenerError``. Open connections are never drained.
    """

    def __init__(
        self,
        config: ServerConfig,
        handler: Handler,
        provider: Callable[[ServerConfig], TLSConfig] = provide_tls_config,
        listener_factory: Callable[..., Any] = Listener,
        logger: Optional[CorrelationLoggerAdapter] = None,
    ) -> None:
        self._config = config
        self._handler = handler
        self._provider = provider
        self._listener_factory = listener_factory
        self._log = logger or LIFECYCLE_LOGGER
        self._state = CoordinatorState.PROVISIONING
        self._shutdown = threading.Event()
        self._signum = int(signal.SIGINT)
        self.listeners: list[Any] = []

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def request_shutdown(self, signum: int = signal.SIGINT) -> None:
        """Ask ``run`` to return; safe to call from a signal handler."""
        self._signum = int(signum)
        self._shutdown.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to ``request_shutdown`` (main thread only)."""

        def handler(signum: int, _frame: Any) -> None:
            self.request_shutdown(signum)

        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)

    def run(self) -> int:
        self._state = CoordinatorState.PROVISIONING
        try:
            tls_config = self._provider(self._config)
        except Exception:
            self._state = CoordinatorState.FAILED
            raise

        self.listeners = self._build_listeners(tls_config)
        # Room for every listener plus the shutdown request, so no reporter blocks.
        completion: "queue.Queue[Outcome]" = queue.Queue(maxsize=len(self.listeners) + 1)

        self._state = CoordinatorState.LISTENING
        for listener in self.listeners:
            threading.Thread(
                target=_serve,
                args=(listener, completion),
                name=f"{listener.name}-listener",
                daemon=True,
            ).start()
        threading.Thread(
            target=self._await_shutdown,
            args=(completion,),
            name="shutdown-watch",
            daemon=True,
        ).start()

        outcome = completion.get()
        for listener in self.listeners:
            listener.close()
        return self._conclude(outcome)

    def _build_listeners(self, tls_config: TLSConfig) -> list[Any]:
        listeners = []
        if tls_config.challenge_handler is not None:
            listeners.append(
                self._listener_factory(
                    CHALLENGE_LISTENER,
                    self._config.challenge_addr,
                    tls_config.challenge_handler,
                    self._config,
                )
            )
        listeners.append(
            self._listener_factory(
                TLS_LISTENER,
                self._config.addr,
                self._handler,
                self._config,
                tls_context=tls_config.context,
            )
        )
        return listeners

    def _await_shutdown(self, completion: "queue.Queue[Outcome]") -> None:
        self._shutdown.wait()
        completion.put(ShutdownRequested(self._signum))

    def _conclude(self, outcome: Outcome) -> int:
        if isinstance(outcome, ShutdownRequested):
            self._state = CoordinatorState.SHUTTING_DOWN
            self._log.info(
                f"signal {outcome.signal_name} received; shutting down",
                extra={"event": "signal_received", "signal": outcome.signum},
            )
            return 0
        if outcome is None:
            self._state = CoordinatorState.SHUTTING_DOWN
            self._log.info("Listener stopped", extra={"event": "server_stopped"})
            return 0

        self._state = CoordinatorState.FAILED
        self._log.error(
            "Listener failed",
            extra={
                "event": "listener_failed",
                "error_type": type(outcome).__name__,
                "error": str(outcome),
            },
        )
        raise ListenerError(f"ListenAndServe: {outcome}") from outcome


def _serve(listener: Any, completion: "queue.Queue[Outcome]") -> None:
    try:
        listener.serve_forever()
    except Exception as error:  # pylint: disable=broad-except
        completion.put(error)
        return
    completion.put(None)
