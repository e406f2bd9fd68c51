"""Constants and configuration for proxyperf."""

from proxyperf import __version__

# Endpoint provider documents
SPEEDTEST_CONFIG_URL = "http://www.speedtest.net/speedtest-config.php"
SPEEDTEST_SERVERS_URL = "http://www.speedtest.net/speedtest-servers.php"
SPEEDTEST_STATIC_SERVERS_URL = "http://www.speedtest.net/speedtest-servers-static.php"

# Upload payload reference ladder (bytes); the provider "ratio" picks the start.
UPLOAD_SIZE_LADDER = [32768, 65536, 131072, 262144, 524288, 1048576, 7340032]

# Download image edge lengths, independent of provider parameters.
DOWNLOAD_SIZE_LADDER = [350, 500, 750, 1000, 1500, 2000, 2500, 3000, 3500, 4000]

# Resources resolved against a candidate's base URL
LATENCY_RESOURCE = "latency.txt"
DOWNLOAD_RESOURCE = "random{size}x{size}.jpg"

# Upload filler body
UPLOAD_PREFIX = b"content1="
UPLOAD_FILLER = b"0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


# Above this download rate the upload pass gets more workers.
FAST_LINK_BPS = 100_000.0
FAST_LINK_UPLOAD_THREADS = 8

# Default measurement settings
DEFAULT_TIMEOUT = 10.0
PROBE_COUNT = 3
NEAREST_CANDIDATES = 5
DEFAULT_DOWNLOAD_SIZES = 4
DEFAULT_UPLOAD_SIZES = 4
DEFAULT_DOWNLOAD_COUNT = 2
DEFAULT_UPLOAD_COUNT = 2
DEFAULT_PROVIDER = "speedtest"

# Control plane (Clash-compatible external controller)
DEFAULT_CONTROLLER = "127.0.0.1:9090"
DEFAULT_MIXED_PROXY = "http://127.0.0.1:7890"
DEFAULT_SELECTOR = "GLOBAL"
DEFAULT_EXCLUDED_MEMBERS = ("DIRECT", "REJECT")

# User agent for HTTP requests
USER_AGENT = f"proxyperf/{__version__}"

# Throughput color thresholds (kilobits per second)
FAST_THRESHOLD_KBPS = 50_000
MEDIUM_THRESHOLD_KBPS = 10_000

# Latency color thresholds (milliseconds)
FAST_THRESHOLD_MS = 20.0
MEDIUM_THRESHOLD_MS = 50.0
