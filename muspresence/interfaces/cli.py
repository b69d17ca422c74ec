import sys
import logging
import signal
import threading
import time
from typing import Optional

from muspresence.application.cover_art import CoverArtResolver
from muspresence.application.reconciler import Reconciler
from muspresence.crosscutting.config import ConfigError, Settings, load_settings
from muspresence.crosscutting.logging import log_error, setup_logging
from muspresence.crosscutting.metrics import TickMetrics
from muspresence.domain.errors import PresenceSinkError
from muspresence.infrastructure.discord import DiscordPresenceSink
from muspresence.infrastructure.image_hosts import create_image_host
from muspresence.infrastructure.music_server import MusicServerClient
from muspresence.interfaces.http import StatusServer


logger = logging.getLogger(__name__)


class CLI:
    """Process runner: startup, the tick loop and shutdown."""

    def __init__(self, config_path: Optional[str] = None, env_file: Optional[str] = '.env'):
        """Initialize CLI."""
        self.config_path = config_path
        self.env_file = env_file
        self._stop = threading.Event()
        self._start_time = None

    def _setup_signal_handlers(self) -> None:
        """Stop the loop on SIGINT/SIGTERM once the current tick is done."""
        def signal_handler(signum, frame):
            logger.warning(f"Received signal {signum}, shutting down gracefully...")
            self._stop.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def request_stop(self) -> None:
        self._stop.set()

    def _setup_logging(self, settings: Settings) -> None:
        """Setup logging configuration."""
        setup_logging(
            level=settings.logging.level,
            log_file=settings.logging.file,
            json_format=settings.logging.format == 'json',
        )

    def _cleanup_resources(self, client: MusicServerClient, sink: DiscordPresenceSink,
                           metrics: TickMetrics) -> None:
        """Clean up resources on exit."""
        try:
            sink.logout()
        except PresenceSinkError as e:
            log_error(logger, "Error closing presence session", e, level='WARNING')
        client.close()
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"Ran for {duration:.2f}s")
        metrics.print_summary()

    def _safe_tick(self, reconciler: Reconciler) -> None:
        # Remote failures are handled inside tick(); this only guards against bugs.
        try:
            reconciler.tick()
        except Exception as e:
            log_error(logger, "Unexpected error during tick", e, exc_info=True)

    def _run_loop(self, reconciler: Reconciler, interval: float) -> None:
        """Tick now, then every ``interval`` seconds until stopped.

        Like a ticker, ticks missed while a slow tick ran are dropped rather
        than fired back to back.
        """
        self._safe_tick(reconciler)
        next_at = time.monotonic() + interval
        while not self._stop.wait(max(0.0, next_at - time.monotonic())):
            self._safe_tick(reconciler)
            next_at += interval
            now = time.monotonic()
            if next_at < now:
                next_at = now + interval

    def run(self) -> int:
        """Run the service and return the process exit code."""
        self._start_time = time.time()

        try:
            settings = load_settings(self.config_path, env_file=self.env_file)
        except ConfigError as e:
            logger.error(f"Error loading config: {e}")
            return 1

        self._setup_logging(settings)
        logger.debug(f"Configuration: {settings.get_config_summary()}")

        metrics = TickMetrics()
        client = MusicServerClient(settings.base_url, timeout=settings.http_timeout_sec)
        host = create_image_host(settings.images, timeout=settings.http_timeout_sec)
        covers = CoverArtResolver(client, host, metrics=metrics)
        sink = DiscordPresenceSink()
        reconciler = Reconciler(client, sink, covers, metrics=metrics)

        try:
            sink.login(settings.discord_app_id)
        except PresenceSinkError as e:
            logger.error(f"Presence login failed: {e}")
            client.close()
            return 1

        self._setup_signal_handlers()

        if settings.status_server.enabled:
            StatusServer(reconciler, metrics,
                         host=settings.status_server.host,
                         port=settings.status_server.port).start()

        logger.info("Rich presence is running. Press Ctrl+C to exit.")
        try:
            self._run_loop(reconciler, settings.poll_interval_sec)
        finally:
            logger.info("Shutting down.")
            self._cleanup_resources(client, sink, metrics)
        return 0


def main():
    """Main entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
