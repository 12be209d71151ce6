"""Operating system guess from the set of open ports."""

from collections.abc import Collection

UNKNOWN_OS = "Unknown"

_WINDOWS_SMB_PORTS = frozenset({135, 139, 445})


def infer_os(ports: Collection[int]) -> str:
    """Return a coarse OS label for a host with the given open ports.

    Rules are checked in order and the first one that applies wins.
    """
    ports = set(ports)

    if _WINDOWS_SMB_PORTS <= ports:
        return "Windows (SMB/RPC)"
    if 3389 in ports:
        return "Windows (RDP)"
    if 22 in ports and 135 not in ports:
        return "Linux/Unix (SSH)"
    if 548 in ports or 5900 in ports:
        return "macOS"
    if 23 in ports and 80 in ports and len(ports) < 5:
        return "Network device"
    return UNKNOWN_OS
