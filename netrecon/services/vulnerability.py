"""Port-based risk heuristics."""

from collections.abc import Collection
from dataclasses import dataclass, field

from ..models.host import Host, RiskLevel

RISKY_PORTS: dict[int, str] = {
    21: "FTP service exposed (potential anonymous access)",
    23: "Telnet service exposed (unencrypted)",
    135: "RPC service exposed (potential RCE)",
    139: "NetBIOS service exposed (information disclosure)",
    445: "SMB service exposed (potential EternalBlue)",
    1433: "SQL Server exposed (potential injection)",
    3306: "MySQL exposed (check authentication)",
    3389: "RDP service exposed (brute force target)",
    5432: "PostgreSQL exposed (check authentication)",
    5900: "VNC service exposed (remote desktop access)",
}

DANGEROUS_PORTS = frozenset({23, 135, 139, 445, 1433, 3389, 5900})
PLAINTEXT_HTTP_PORTS = frozenset({80, 8000, 8008, 8080})
MANY_OPEN_PORTS = 15

TELNET_SCORE = 40
FTP_SCORE = 30
HTTP_SCORE = 20
SMTP_SCORE = 15
MANY_PORTS_SCORE = 25
DANGEROUS_PORT_SCORE = 20


def risk_level_for(score: int) -> RiskLevel:
    """Map a numeric score to its risk tier."""
    if score >= 60:
        return RiskLevel.CRITICAL
    if score >= 40:
        return RiskLevel.HIGH
    if score >= 20:
        return RiskLevel.MEDIUM
    if score >= 10:
        return RiskLevel.LOW
    return RiskLevel.MINIMAL


@dataclass(frozen=True)
class Assessment:
    """Outcome of assessing one set of open ports."""

    score: int
    risk_level: RiskLevel
    vulnerabilities: frozenset[str] = field(default_factory=frozenset)


def assess(ports: Collection[int]) -> Assessment:
    """Score an open-port set. Same ports in, same assessment out."""
    ports = set(ports)
    score = 0
    findings = {RISKY_PORTS[port] for port in ports if port in RISKY_PORTS}

    if 23 in ports:
        score += TELNET_SCORE
    if 21 in ports:
        score += FTP_SCORE
    if ports & PLAINTEXT_HTTP_PORTS:
        score += HTTP_SCORE
        findings.add("Unencrypted HTTP service")
    if 25 in ports:
        score += SMTP_SCORE
        findings.add("Unencrypted SMTP service")
    if len(ports) > MANY_OPEN_PORTS:
        score += MANY_PORTS_SCORE
        findings.add(f"Large attack surface ({len(ports)} open ports)")

    score += DANGEROUS_PORT_SCORE * len(ports & DANGEROUS_PORTS)

    return Assessment(score=score, risk_level=risk_level_for(score), vulnerabilities=frozenset(findings))


def apply_assessment(host: Host) -> Assessment:
    """Assess ``host`` and record the findings and tier on it."""
    result = assess(host.open_ports)
    for description in result.vulnerabilities:
        host.add_vulnerability(description)
    host.risk_level = result.risk_level
    return result
