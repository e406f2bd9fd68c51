"""Parse the provider configuration document into a MeasurementConfig.

The document is the speedtest.net ``speedtest-config.php`` XML.  Only four
elements matter, each found anywhere in the tree::

    <client ip="..." lat="..." lon="..." isp="..."/>
    <server-config threadcount="4" ignoreids="1,2,3"/>
    <download testlength="10" threadsperurl="4"/>
    <upload testlength="10" ratio="5" threads="2" maxchunkcount="50"/>

Derivation rules:
    upload sizes     -- UPLOAD_SIZE_LADDER starting at index ratio - 1
    download sizes   -- DOWNLOAD_SIZE_LADDER, fixed
    upload count     -- ceil(maxchunkcount / len(upload sizes))
    download count   -- download@threadsperurl
    download threads -- 2 * server-config@threadcount
    upload threads   -- upload@threads
"""

from __future__ import annotations

import ipaddress
import logging
import math
import xml.etree.ElementTree as ET
from typing import Optional

from proxyperf.config import DOWNLOAD_SIZE_LADDER, UPLOAD_SIZE_LADDER
from proxyperf.errors import ConfigParseError
from proxyperf.models import GeoPoint, MeasurementConfig, ProxyDescriptor, RunOptions

logger = logging.getLogger(__name__)


def _find(root: ET.Element, tag: str) -> ET.Element:
    node = next(root.iter(tag), None)
    if node is None:
        raise ConfigParseError(tag, "element missing")
    return node


def _attr(node: ET.Element, name: str) -> str:
    value = node.get(name)
    if value is None:
        raise ConfigParseError(f"{node.tag}.{name}", "attribute missing")
    return value


def _int_attr(node: ET.Element, name: str, minimum: int = 1) -> int:
    raw = _attr(node, name)
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigParseError(f"{node.tag}.{name}", f"not an integer: {raw!r}") from None
    if value < minimum:
        raise ConfigParseError(f"{node.tag}.{name}", f"must be at least {minimum}, got {value}")
    return value


def _float_attr(node: ET.Element, name: str) -> float:
    raw = _attr(node, name)
    try:
        value = float(raw.strip())
    except ValueError:
        raise ConfigParseError(f"{node.tag}.{name}", f"not a number: {raw!r}") from None
    if not math.isfinite(value):
        raise ConfigParseError(f"{node.tag}.{name}", f"not finite: {raw!r}")
    return value


def _ignore_ids(node: ET.Element) -> set[int]:
    ids: set[int] = set()
    for item in _attr(node, "ignoreids").split(","):
        item = item.strip()
        if not item:
            continue
        try:
            ids.add(int(item))
        except ValueError:
            raise ConfigParseError(
                f"{node.tag}.ignoreids", f"not an integer: {item!r}"
            ) from None
    return ids


def upload_sizes_for_ratio(ratio: int) -> list[int]:
    """Return the upload ladder tail selected by *ratio* (1-based)."""
    if not 1 <= ratio <= len(UPLOAD_SIZE_LADDER):
        raise ConfigParseError(
            "upload.ratio",
            f"must be between 1 and {len(UPLOAD_SIZE_LADDER)}, got {ratio}",
        )
    return UPLOAD_SIZE_LADDER[ratio - 1:]


def parse_config(
    document: str,
    proxy: Optional[ProxyDescriptor] = None,
) -> MeasurementConfig:
    """Build a MeasurementConfig from the configuration XML.

    Raises
    ------
    ConfigParseError
        Naming the first missing or malformed field.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise ConfigParseError("document", f"malformed XML: {exc}") from exc

    server_config = _find(root, "server-config")
    download = _find(root, "download")
    upload = _find(root, "upload")
    client = _find(root, "client")

    upload_sizes = upload_sizes_for_ratio(_int_attr(upload, "ratio"))
    upload_max = _int_attr(upload, "maxchunkcount")

    client_ip = _attr(client, "ip")
    try:
        ipaddress.ip_address(client_ip)
    except ValueError:
        raise ConfigParseError("client.ip", f"not an IP address: {client_ip!r}") from None

    config = MeasurementConfig(
        location=GeoPoint(
            latitude=_float_attr(client, "lat"),
            longitude=_float_attr(client, "lon"),
        ),
        client_ip=client_ip,
        isp=_attr(client, "isp"),
        ignore_ids=_ignore_ids(server_config),
        upload_sizes=upload_sizes,
        download_sizes=list(DOWNLOAD_SIZE_LADDER),
        upload_count=math.ceil(upload_max / len(upload_sizes)),
        download_count=_int_attr(download, "threadsperurl"),
        upload_threads=_int_attr(upload, "threads"),
        download_threads=_int_attr(server_config, "threadcount") * 2,
        upload_length=float(_int_attr(upload, "testlength", minimum=0)),
        download_length=float(_int_attr(download, "testlength", minimum=0)),
        upload_max=upload_max,
        proxy=proxy,
    )
    logger.debug(
        "Parsed configuration: %d upload sizes, %d download sizes, threads %d/%d",
        len(config.upload_sizes),
        len(config.download_sizes),
        config.download_threads,
        config.upload_threads,
    )
    return config


def apply_overrides(config: MeasurementConfig, options: RunOptions) -> MeasurementConfig:
    """Shrink the size ladders and fix repetition counts, in place.

    Bounds the total run time; must be called before any benchmark starts.
    """
    config.download_sizes = config.download_sizes[: options.download_sizes]
    config.upload_sizes = config.upload_sizes[: options.upload_sizes]
    config.download_count = options.download_count
    config.upload_count = options.upload_count
    return config
