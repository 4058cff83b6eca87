"""Subscription server lifecycle: start, stop and the lifetime context."""

import functools
import logging
import socket
import ssl
import threading
import time
from typing import Callable, Optional

import uvicorn
from sqlalchemy.orm import Session

from config.settings import SHUTDOWN_TIMEOUT, STARTUP_TIMEOUT
from services import SettingService, SubJsonService, SubService

from .app import create_app
from .config import ServerConfig
from .errors import ServerError, ShutdownError
from .network import AutoHttpsProtocol, bind_listener, load_tls_context


class Server:
    """Subscription server that serves subscription links and JSON configurations.

    Settings are read on every start(); change them and restart to apply.
    start() and stop() are not guarded against concurrent calls, and a
    stopped instance keeps its cancelled context, so create a new Server
    for the next run.

    Usage:
        server = Server(SettingService())
        server.start()
        ...
        server.stop()
    """

    def __init__(
        self,
        setting_service: SettingService,
        session_factory: Optional[Callable[[], Session]] = None,
        logger: Optional[logging.Logger] = None,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
    ):
        self.setting_service = setting_service
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)
        self.shutdown_timeout = shutdown_timeout

        self.config: Optional[ServerConfig] = None
        self.listener: Optional[socket.socket] = None
        self.http_server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._ctx = threading.Event()

    def get_ctx(self) -> threading.Event:
        """Lifetime context; set once the server is stopped."""
        return self._ctx

    @property
    def address(self) -> Optional[tuple]:
        """Bound (host, port, ...) of the listener, None when not running."""
        if self.listener is None:
            return None
        return self.listener.getsockname()

    def start(self) -> None:
        """Read settings, bind the listener and serve in a background thread.

        Does nothing when the subscription server is disabled.

        Raises:
            SettingError: If a required setting cannot be resolved
            OSError: If the listener cannot be bound
            ServerError: If the serving thread dies during startup
        """
        if not self.setting_service.get_sub_enable():
            self.logger.info("Sub server disabled")
            return

        try:
            self._start()
        except Exception:
            self._stop_quietly()
            raise

    def _start(self) -> None:
        config = ServerConfig.load(self.setting_service)
        self.config = config

        sub_service = SubService(config.show_info, config.remark_model, self.session_factory)
        sub_json_service = SubJsonService(
            config.json_fragment,
            config.json_noise,
            config.json_mux,
            config.json_rules,
            sub_service,
        )
        app = create_app(config, sub_service, sub_json_service)

        self.listener = bind_listener(config.listen, config.port)

        http_protocol = "h11"
        scheme = "HTTP"
        if config.tls_configured:
            try:
                ssl_context = load_tls_context(config.cert_file, config.key_file)
            except (OSError, ssl.SSLError) as e:
                self.logger.error(f"Error loading certificates: {e}")
            else:
                http_protocol = functools.partial(AutoHttpsProtocol, ssl_context=ssl_context)
                scheme = "HTTPS"

        uv_config = uvicorn.Config(
            app,
            http=http_protocol,
            loop="asyncio",
            lifespan="off",
            proxy_headers=False,
            server_header=False,
            log_config=None,
            access_log=False,
            timeout_graceful_shutdown=self.shutdown_timeout,
        )
        self.http_server = uvicorn.Server(uv_config)
        self._thread = threading.Thread(
            target=self.http_server.run,
            kwargs={"sockets": [self.listener]},
            name="sub-server",
            daemon=True,
        )
        self._thread.start()
        self._wait_started()

        self.logger.info(f"Sub server running {scheme} on {self.listener.getsockname()}")

    def _wait_started(self) -> None:
        deadline = time.monotonic() + STARTUP_TIMEOUT
        while not self.http_server.started:
            if not self._thread.is_alive():
                raise ServerError("Sub server exited during startup")
            if time.monotonic() > deadline:
                raise ServerError("Sub server did not start in time")
            time.sleep(0.01)

    def stop(self) -> None:
        """Shut down gracefully and close the listener; safe to call twice.

        Raises:
            ShutdownError: If shutdown or closing the listener failed
        """
        self._ctx.set()

        errors = []
        if self.http_server is not None:
            self.http_server.should_exit = True
            if self._thread is not None and self._thread.is_alive():
                self._thread.join(self.shutdown_timeout + 1)
                if self._thread.is_alive():
                    self.http_server.force_exit = True
                    errors.append(ServerError("Sub server did not shut down in time"))
        if self.listener is not None:
            try:
                self.listener.close()
            except OSError as e:
                errors.append(e)

        self.http_server = None
        self._thread = None
        self.listener = None

        if errors:
            raise ShutdownError(errors)
        self.logger.info("Sub server stopped")

    def _stop_quietly(self) -> None:
        try:
            self.stop()
        except ShutdownError as e:
            self.logger.error(f"Cleanup after failed start: {e}")
