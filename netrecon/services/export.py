"""Graph, CSV and JSON export of scan results."""

import csv
import json
import logging
import math
from pathlib import Path
from typing import Any

from ..models.host import Host
from ..models.scan_result import ScanResult

logger = logging.getLogger(__name__)

CANVAS_CENTER = (400.0, 300.0)

GATEWAY_NODE_ID = "gateway"

CSV_COLUMNS = [
    "ip",
    "hostname",
    "mac",
    "vendor",
    "response_time_ms",
    "open_port_count",
    "open_ports",
    "services",
    "os_guess",
    "device_type",
    "risk_level",
    "vulnerabilities",
]


def layout_hosts(hosts: list[Host]) -> None:
    """Place hosts on a circle around the canvas center (sets ``x``/``y``)."""
    cx, cy = CANVAS_CENTER
    if len(hosts) == 1:
        hosts[0].x, hosts[0].y = cx, cy
        return

    radius = min(200, 50 + len(hosts) * 10)
    for i, host in enumerate(hosts):
        angle = 2 * math.pi * i / len(hosts)
        host.x = cx + radius * math.cos(angle)
        host.y = cy + radius * math.sin(angle)


def to_graph(result: ScanResult) -> dict[str, Any]:
    """Build a node/link graph: a gateway node linked to every host."""
    hosts = result.hosts
    layout_hosts(hosts)

    gateway_name = "Gateway/Router"
    if result.gateway and result.gateway.default_gateway:
        gateway_name = f"Gateway/Router ({result.gateway.default_gateway})"

    nodes: list[dict[str, Any]] = [
        {
            "id": GATEWAY_NODE_ID,
            "name": gateway_name,
            "type": "gateway",
            "x": CANVAS_CENTER[0],
            "y": CANVAS_CENTER[1],
            "status": "online",
        }
    ]
    links = []
    for host in hosts:
        nodes.append(
            {
                "id": host.ip,
                "name": host.display_name,
                "ip": host.ip,
                "hostname": host.hostname,
                "type": "host",
                "x": host.x,
                "y": host.y,
                "status": "online" if host.is_alive else "offline",
                "responseTime": host.response_time_ms,
                "openPorts": len(host.open_ports),
                "os": host.os_guess or "Unknown",
                "risk": host.risk_level.label,
                "services": host.sorted_services,
                "ports": host.sorted_ports,
            }
        )
        links.append({"source": GATEWAY_NODE_ID, "target": host.ip, "type": "network"})

    return {"nodes": nodes, "links": links}


def to_rows(hosts: list[Host]) -> list[dict[str, Any]]:
    """Flatten hosts into one row per host for tabular export."""
    return [
        {
            "ip": h.ip,
            "hostname": h.hostname,
            "mac": h.mac,
            "vendor": h.vendor,
            "response_time_ms": h.response_time_ms,
            "open_port_count": len(h.open_ports),
            "open_ports": " ".join(str(p) for p in h.sorted_ports),
            "services": "; ".join(h.sorted_services),
            "os_guess": h.os_guess,
            "device_type": h.device_type,
            "risk_level": h.risk_level.label,
            "vulnerabilities": "; ".join(h.sorted_vulnerabilities),
        }
        for h in hosts
    ]


def write_csv(result: ScanResult, path: Path | str) -> Path:
    path = Path(path)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(to_rows(result.hosts))
    logger.info(f"Wrote {len(result.hosts)} hosts to {path}")
    return path


def write_json(data: ScanResult | dict[str, Any], path: Path | str) -> Path:
    """Write a scan result (or a graph from :func:`to_graph`) as JSON."""
    path = Path(path)
    if isinstance(data, ScanResult):
        text = data.model_dump_json(indent=2)
    else:
        text = json.dumps(data, indent=2)
    path.write_text(text, encoding="utf-8")
    logger.info(f"Wrote {path}")
    return path
