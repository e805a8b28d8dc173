"""rctl-exporter: Prometheus exporter for FreeBSD rctl resource accounting."""
