"""proxyperf -- latency and throughput measurement through proxies."""

__version__ = "0.1.0"
