import os
import logging
import threading
from typing import Optional
from datetime import datetime
from flask import Flask, jsonify

from muspresence.application.reconciler import Reconciler
from muspresence.crosscutting.metrics import TickMetrics


VERSION = "0.1.0"


class StatusServer:
    """Read-only HTTP status endpoints for the running presence service."""

    def __init__(self, reconciler: Reconciler, metrics: Optional[TickMetrics] = None,
                 host: str = '127.0.0.1', port: int = 8787):
        """Initialize status server."""
        self.reconciler = reconciler
        self.metrics = metrics
        self.host = host
        self.port = port
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)
        self._thread: Optional[threading.Thread] = None

        self.version = VERSION
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/status', methods=['GET'])
        def status():
            """Currently announced presence."""
            current = self.reconciler.status()
            return jsonify({
                'active': current is not None,
                'presence': current,
            }), 200

        @self.app.route('/metrics', methods=['GET'])
        def metrics():
            """Tick and cover art counters."""
            if self.metrics is None:
                return jsonify({'error': 'Metrics not enabled'}), 404
            return jsonify(self.metrics.to_dict()), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'muspresence status',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'status': '/status',
                    'metrics': '/metrics'
                }
            }), 200

    def start(self) -> threading.Thread:
        """Serve on a daemon thread."""
        self.logger.info(f"Starting status server on {self.host}:{self.port}")
        self._thread = threading.Thread(
            target=self.app.run,
            kwargs={'host': self.host, 'port': self.port, 'debug': False, 'use_reloader': False},
            name='muspresence-status',
            daemon=True,
        )
        self._thread.start()
        return self._thread
