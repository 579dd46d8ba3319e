# cpamm/monitoring.py
import errno
import time
import socket
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

logger = logging.getLogger(__name__)

# Create a threaded WSGI server for the Prometheus metrics
class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the pool."""
    allow_reuse_address = True


class PoolMonitor:
    def __init__(self, host="127.0.0.1", port=9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None
        self.bind_attempts = 5
        self.bind_delay = 2

        # Isolated registry so several pools can live in one process
        self.registry = CollectorRegistry()

        self.op_counter = Counter('amm_operations_total', 'Pool operations processed', ['operation', 'status'], registry=self.registry)
        self.op_latency = Histogram('amm_operation_latency_seconds', 'Time to process a pool operation', ['operation'], registry=self.registry)
        self.reserve = Gauge('amm_reserve', 'Cached pool reserve', ['side'], registry=self.registry)
        self.amm_k = Gauge('amm_invariant_k', 'Constant product k', registry=self.registry)
        self.share_supply = Gauge('amm_share_supply', 'Total pool shares outstanding', registry=self.registry)

    def start_server(self):
        """Serve the registry over HTTP, retrying while the port is still held."""
        app = make_wsgi_app(self.registry)

        for attempt in range(1, self.bind_attempts + 1):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
            except OSError as e:
                if e.errno != errno.EADDRINUSE:
                    raise
                if attempt == self.bind_attempts:
                    logger.error(f"Metrics port {self.port} still in use after {attempt} attempts")
                    raise
                logger.warning(f"Metrics port {self.port} in use, retry {attempt}/{self.bind_attempts} in {self.bind_delay}s")
                time.sleep(self.bind_delay)
                continue

            self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
            self.thread.start()
            logger.info(f"Metrics for the pool served on http://{self.host}:{self.port}")
            return

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self, reserve_a: int, reserve_b: int, share_supply: int):
        self.reserve.labels(side='a').set(reserve_a)
        self.reserve.labels(side='b').set(reserve_b)
        self.amm_k.set(reserve_a * reserve_b)
        self.share_supply.set(share_supply)

    def record_op(self, operation: str, status: str, latency: float):
        self.op_counter.labels(operation=operation, status=status).inc()
        self.op_latency.labels(operation=operation).observe(latency)
