"""Process lifecycle: startup, listening, graceful shutdown.

States: STARTING -> LISTENING -> SHUTTING_DOWN -> STOPPED

Starting:
    settings -> logging -> telemetry -> repository -> app + middleware
    -> ServerHandle bound to HOST:PORT. A bind failure is fatal.
Listening:
    uvicorn serves on a dedicated listener thread. The main thread waits for
    SIGINT/SIGTERM (or request_shutdown()). If the listener thread exits
    without a shutdown request, that is fatal too.
Shutting down:
    The listener closes (new connections are refused) and in-flight requests
    get up to SHUTDOWN_TIMEOUT to finish.
Stopped:
    Telemetry is flushed with its own timeout. Exit code is 0 after a clean
    drain, 1 if requests were still in flight or startup/listening failed.

Usage:
    from stencil.lifecycle import main
    raise SystemExit(main())
"""

import signal
import threading
from enum import Enum

from pydantic import ValidationError

from stencil.app import create_app
from stencil.config import Settings, get_settings
from stencil.logging import configure_logging, get_logger
from stencil.repository import Repository
from stencil.server import ServerHandle
from stencil.telemetry import Telemetry, setup_telemetry

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

# Time allowed for uvicorn to finish its own shutdown after the drain
LISTENER_JOIN_TIMEOUT_S = 5.0


class LifecycleState(str, Enum):
    """Lifecycle states, in order."""

    STARTING = "starting"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class Lifecycle:
    """Wires the service together and runs it until told to stop.

    Args:
        settings: Settings to use (default: get_settings()).
        repository: Data-access collaborator (default: canned Repository).
        telemetry: Pre-built telemetry handle (default: built from settings).
        configure_logs: Whether start() configures logging from settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        repository: Repository | None = None,
        telemetry: Telemetry | None = None,
        configure_logs: bool = True,
    ):
        self.settings = settings or get_settings()
        self.repository = repository
        self.telemetry = telemetry
        self.configure_logs = configure_logs
        self.state = LifecycleState.STARTING
        self.server: ServerHandle | None = None

        self._thread: threading.Thread | None = None
        self._wakeup = threading.Event()
        self._shutdown_requested = threading.Event()
        self._listener_error: BaseException | None = None

    @property
    def listener_failed(self) -> bool:
        return self._listener_error is not None and not self._shutdown_requested.is_set()

    def start(self) -> None:
        """Build every component, bind the port and start the listener thread.

        Raises:
            OSError: If the listen address cannot be bound.
        """
        settings = self.settings
        if self.configure_logs:
            configure_logging(level=settings.log_level, json_format=settings.is_production)

        logger.info(
            "starting_server",
            port=settings.port,
            environment=settings.environment,
            log_level=settings.log_level,
        )

        if self.telemetry is None:
            self.telemetry = setup_telemetry(settings)
        repository = self.repository or Repository()

        app = create_app(
            settings,
            repository=repository,
            tracer=self.telemetry.tracer,
            meter=self.telemetry.meter,
        )
        self.server = ServerHandle(settings, app)
        self.server.bind()

        self._thread = threading.Thread(target=self._serve, name="stencil-listener", daemon=True)
        self._thread.start()

        self.state = LifecycleState.LISTENING
        logger.info("server_listening", address=self.server.address)

    def _serve(self) -> None:
        try:
            self.server.serve()
        except (Exception, SystemExit) as e:
            self._listener_error = e
        else:
            if not self._shutdown_requested.is_set():
                self._listener_error = RuntimeError("listener exited unexpectedly")
        finally:
            self._wakeup.set()

    def request_shutdown(self) -> None:
        """Ask the main thread to begin shutdown. Safe from signal handlers."""
        self._shutdown_requested.set()
        self._wakeup.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to request_shutdown(). Main thread only."""

        def handle_signal(signum, frame):
            logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
            self.request_shutdown()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until shutdown is requested or the listener dies.

        Returns:
            True if woken, False if the timeout passed first.
        """
        return self._wakeup.wait(timeout)

    def shutdown(self) -> bool:
        """Drain in-flight requests, stop the listener and flush telemetry.

        Returns:
            True if the drain completed within SHUTDOWN_TIMEOUT.
        """
        self.state = LifecycleState.SHUTTING_DOWN
        timeout = self.settings.shutdown_timeout.total_seconds()
        logger.info("shutdown_started", timeout_s=timeout)

        drained = True
        if self.server is not None:
            drained = self.server.stop(timeout)
            if self._thread is not None:
                self._thread.join(timeout=LISTENER_JOIN_TIMEOUT_S)
                if self._thread.is_alive():
                    logger.warning("listener_thread_still_running")
            self.server.close()

        if drained:
            logger.info("shutdown_completed")
        else:
            logger.error("shutdown_error", error="in-flight requests did not finish in time")

        self._shutdown_telemetry()
        self.state = LifecycleState.STOPPED
        return drained

    def _shutdown_telemetry(self) -> None:
        if self.telemetry is not None:
            self.telemetry.shutdown()

    def run(self) -> int:
        """Run the full lifecycle on the main thread.

        Returns:
            Process exit code.
        """
        try:
            self.start()
        except OSError as e:
            logger.error("server_error", error=str(e), address=self.settings.address)
            self._shutdown_telemetry()
            self.state = LifecycleState.STOPPED
            return EXIT_FAILURE

        self.install_signal_handlers()
        self.wait()

        if self.listener_failed:
            logger.error("server_error", error=str(self._listener_error))
            if self.server is not None:
                self.server.close()
            self._shutdown_telemetry()
            self.state = LifecycleState.STOPPED
            return EXIT_FAILURE

        logger.info("graceful_shutdown_starting")
        return EXIT_OK if self.shutdown() else EXIT_FAILURE


def main() -> int:
    """Console entry point: run the service until SIGINT/SIGTERM."""
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error("server_error", error="invalid configuration", detail=str(e))
        return EXIT_FAILURE
    return Lifecycle(settings).run()
