"""Target range parsing (single address, last-octet range or CIDR block)."""

import ipaddress
import logging

logger = logging.getLogger(__name__)

GENERAL_TARGET_CAP = 1000
ADDRESS_TABLE_TARGET_CAP = 254

MIN_PREFIX = 16
MAX_PREFIX = 30


class InvalidTargetError(ValueError):
    """The target specification could not be parsed."""

    def __init__(self, spec: str, reason: str):
        super().__init__(f"Invalid target specification '{spec}': {reason}")
        self.spec = spec
        self.reason = reason


def _parse_ipv4(spec: str, value: str) -> ipaddress.IPv4Address:
    octets = value.strip().split(".")
    if len(octets) != 4:
        raise InvalidTargetError(spec, f"'{value}' does not have four octets")
    try:
        return ipaddress.IPv4Address(value.strip())
    except ValueError as e:
        raise InvalidTargetError(spec, str(e))


def _parse_cidr(spec: str, cap: int) -> list[str]:
    base, _, prefix_str = spec.partition("/")
    try:
        prefix = int(prefix_str)
    except ValueError:
        raise InvalidTargetError(spec, f"prefix '{prefix_str}' is not a number")
    if not MIN_PREFIX <= prefix <= MAX_PREFIX:
        raise InvalidTargetError(spec, f"CIDR prefix must be between {MIN_PREFIX} and {MAX_PREFIX}")

    base_addr = _parse_ipv4(spec, base)
    network = ipaddress.IPv4Network(f"{base_addr}/{prefix}", strict=False)
    first = int(network.network_address) + 1
    # Network and broadcast addresses are excluded
    count = min(network.num_addresses - 2, cap)
    return [str(ipaddress.IPv4Address(first + i)) for i in range(count)]


def _parse_range(spec: str, cap: int) -> list[str]:
    parts = spec.split("-")
    if len(parts) != 2:
        raise InvalidTargetError(spec, "range must look like A.B.C.D-A.B.C.E")

    start = _parse_ipv4(spec, parts[0])
    end_str = parts[1].strip()
    if end_str.isdigit():
        # Short form 192.168.1.10-20
        end_str = ".".join(str(start).split(".")[:3] + [end_str])
    end = _parse_ipv4(spec, end_str)

    start_octets = str(start).split(".")
    end_octets = str(end).split(".")
    if start_octets[:3] != end_octets[:3]:
        raise InvalidTargetError(spec, "range may only differ in the last octet")

    first, last = int(start_octets[3]), int(end_octets[3])
    if first > last:
        raise InvalidTargetError(spec, "range start is after range end")

    prefix = ".".join(start_octets[:3])
    return [f"{prefix}.{i}" for i in range(first, last + 1)][:cap]


def parse_target_range(spec: str, cap: int = GENERAL_TARGET_CAP) -> list[str]:
    """Expand a target specification into an ordered list of addresses.

    Args:
        spec: ``"192.168.1.5"``, ``"printer.local"``, ``"192.168.1.1-192.168.1.20"``
            or ``"192.168.1.0/24"``.
        cap: Maximum number of addresses returned; extra addresses are dropped.

    Raises:
        InvalidTargetError: malformed CIDR, range or octet count.
    """
    if spec is None or not spec.strip():
        raise InvalidTargetError(str(spec), "target is empty")

    spec = spec.strip()
    if "/" in spec:
        addresses = _parse_cidr(spec, cap)
    elif "-" in spec and spec.replace("-", "").replace(".", "").replace(" ", "").isdigit():
        addresses = _parse_range(spec, cap)
    else:
        # Bare address or hostname
        if spec.replace(".", "").isdigit():
            _parse_ipv4(spec, spec)
        addresses = [spec]

    logger.debug(f"Parsed target '{spec}' into {len(addresses)} address(es)")
    return addresses

