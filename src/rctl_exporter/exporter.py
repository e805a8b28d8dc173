"""HTTP exporter serving rctl metrics to Prometheus."""

import asyncio
import signal
from importlib.metadata import PackageNotFoundError, version
from socketserver import ThreadingMixIn
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import structlog
from prometheus_client import CollectorRegistry, make_wsgi_app

from rctl_exporter import logging as rlog
from rctl_exporter.collector import RctlCollector
from rctl_exporter.config import Config
from rctl_exporter.manager import ResourceManager
from rctl_exporter.sysctl import racct_enabled

LANDING_PAGE = """<html>
<head><title>rctl Exporter</title></head>
<body>
<h1>rctl Exporter</h1>
<p><a href='{path}'>Metrics</a></p>
</body>
</html>
"""


def get_version() -> str:
    try:
        return version("rctl-exporter")
    except PackageNotFoundError:
        return "unknown"


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Handle each scrape in its own thread."""

    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    """Route per-request access logs to structlog at debug level."""

    def log_message(self, format: str, *args) -> None:
        structlog.get_logger("rctl_exporter.http").debug(
            "http_request", client=self.address_string(), request=format % args
        )


class Exporter:
    """Serves the collector registry until SIGTERM/SIGINT."""

    def __init__(
        self,
        config: Config,
        manager: ResourceManager,
        log: structlog.stdlib.BoundLogger,
    ):
        self.config = config
        self.log = log
        self.registry = CollectorRegistry()
        self.collector = RctlCollector(manager, log)
        self.registry.register(self.collector)

        self._server: WSGIServer | None = None
        self._serve_future: asyncio.Future | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def port(self) -> int | None:
        """Bound port (differs from config when configured as 0)."""
        return self._server.server_port if self._server else None

    def wsgi_app(self):
        """WSGI app: metrics at the telemetry path, a landing page at /."""
        metrics_app = make_wsgi_app(self.registry)
        telemetry_path = self.config.web.telemetry_path
        landing = LANDING_PAGE.format(path=telemetry_path).encode()

        def app(environ, start_response):
            path = environ.get("PATH_INFO") or "/"
            if path == telemetry_path:
                return metrics_app(environ, start_response)
            if path == "/":
                start_response("200 OK", [("Content-Type", "text/html; charset=utf-8")])
                return [landing]
            start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
            return [b"Not Found\n"]

        return app

    async def start(self) -> None:
        """Bind the HTTP server and serve until shutdown is requested."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

        web = self.config.web
        self._server = make_server(
            web.listen_address,
            web.listen_port,
            self.wsgi_app(),
            server_class=_ThreadingWSGIServer,
            handler_class=_QuietHandler,
        )
        self._serve_future = loop.run_in_executor(None, self._server.serve_forever)

        self.log.info(
            "exporter_started",
            address=web.listen_address,
            port=self.port,
            telemetry_path=web.telemetry_path,
        )
        rlog.exporter_started(web.listen_address, self.port, web.telemetry_path)

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop serving and release the socket."""
        self.log.info("exporter_stopping")
        rlog.exporter_stopping()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

        if self._server is not None:
            await loop.run_in_executor(None, self._server.shutdown)
            if self._serve_future is not None:
                await self._serve_future
            self._server.server_close()
            self._server = None

        self.log.info("exporter_stopped")
        rlog.exporter_stopped()

    def request_shutdown(self) -> None:
        """Ask start() to return."""
        self._shutdown_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        self.log.info("signal_received", signal=sig.name)
        rlog.signal_received(sig.name)
        self.request_shutdown()


async def run_exporter(config: Config | None = None) -> None:
    """Run the exporter until shutdown.

    Args:
        config: Optional config, loads from file if not provided
    """
    if config is None:
        config = Config.load()

    rlog.configure(config)
    log = rlog.get_structlog()

    rlog.version_info("rctl-exporter", get_version())
    enabled = racct_enabled()
    if enabled is None:
        rlog.accounting_unsupported()
    elif not enabled:
        rlog.accounting_disabled()

    manager = ResourceManager.from_config(config, log)
    rlog.filter_summary([str(r) for r in manager.rules], config.collect.max_matches)

    exporter = Exporter(config, manager, log)
    try:
        await exporter.start()
    except Exception as e:
        log.exception("exporter_crashed", error=str(e))
        raise
    finally:
        await exporter.stop()
