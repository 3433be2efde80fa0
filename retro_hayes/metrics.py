"""Prometheus call metrics with optional push to a Grafana Cloud gateway."""

import logging
import threading

logger = logging.getLogger(__name__)

try:
    from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway
    HAS_PROMETHEUS = True
except ImportError:
    HAS_PROMETHEUS = False


class Metrics:
    """Call counters, pushed periodically when a gateway is configured."""

    def __init__(self, url="", user="", api_key="", push_interval=60):
        self.enabled = bool(url and user and api_key and HAS_PROMETHEUS)

        if not self.enabled:
            if url and not HAS_PROMETHEUS:
                logger.warning("prometheus_client not installed, metrics disabled")
            elif not url:
                logger.info("Grafana Cloud not configured, metrics disabled")
            return

        self.url = url
        self.user = user
        self.api_key = api_key
        self.registry = CollectorRegistry()

        self.calls_total = Counter(
            "modem_calls_total", "Completed calls",
            labelnames=["direction", "protocol", "disconnect_reason"],
            registry=self.registry,
        )
        self.call_duration = Histogram(
            "modem_call_duration_seconds", "Call duration",
            buckets=[30, 60, 120, 300, 600, 1800, 3600, 7200],
            registry=self.registry,
        )
        self.bytes_total = Counter(
            "modem_bytes_total", "Payload bytes carried",
            labelnames=["direction"],
            registry=self.registry,
        )
        self.dial_results = Counter(
            "modem_dial_results_total", "Outbound dial outcomes",
            labelnames=["result"],
            registry=self.registry,
        )

        self._stop_event = threading.Event()
        self._push_thread = threading.Thread(
            target=self._push_loop, args=(push_interval,), daemon=True
        )
        self._push_thread.start()
        logger.info(f"Grafana Cloud metrics enabled (push every {push_interval}s)")

    def record_dial(self, result):
        """Record the result code of an outbound dial."""
        if not self.enabled:
            return
        self.dial_results.labels(result=result).inc()

    def record_call_end(self, direction, protocol, duration_secs, sent, recv, disconnect_reason):
        """Record a finished call with its byte counts."""
        if not self.enabled:
            return
        self.calls_total.labels(
            direction=direction, protocol=protocol, disconnect_reason=disconnect_reason
        ).inc()
        self.call_duration.observe(duration_secs)
        self.bytes_total.labels(direction="sent").inc(sent)
        self.bytes_total.labels(direction="recv").inc(recv)

    def _push_loop(self, interval):
        while not self._stop_event.wait(interval):
            self._push()

    def _push(self):
        try:
            from prometheus_client.exposition import basic_auth_handler

            def auth_handler(url, method, timeout, headers, data):
                return basic_auth_handler(url, method, timeout, headers, data,
                                          self.user, self.api_key)

            push_to_gateway(
                self.url, job="retro_hayes",
                registry=self.registry, handler=auth_handler,
            )
            logger.debug("Metrics pushed to Grafana Cloud")
        except Exception as e:
            logger.warning(f"Failed to push metrics: {e}")

    def stop(self):
        """Stop the push thread and do a final push."""
        if not self.enabled:
            return
        self._stop_event.set()
        self._push()
