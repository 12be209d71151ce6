"""Entry point for running the scanner as a module."""

import argparse
import atexit
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pydantic import ValidationError

from .models.config import AppConfig, PortScanTechnique, ScanConfiguration, ScanType
from .models.scan_result import ScanResult, ScanState
from .services.export import to_graph, write_csv, write_json
from .services.orchestrator import ScanOrchestrator
from .services.pool import CancelToken

# Global reference for signal handlers
_cancel: CancelToken | None = None
_logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> None:
    """Configure logging with rotation support.

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the rotating log file
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    # Try to add rotating file handler
    log_path = Path(log_dir)
    try:
        log_path.mkdir(exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / "netrecon.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        handlers.append(file_handler)
    except (PermissionError, OSError):
        pass  # Skip file logging if we can't write

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def _signal_handler(signum: int, frame: object) -> None:
    """Cancel the running scan on SIGINT/SIGTERM.

    Args:
        signum: Signal number received
        frame: Current stack frame (unused)
    """
    signal_name = signal.Signals(signum).name
    _logger.info(f"Received {signal_name}, cancelling scan...")

    if _cancel is not None:
        _cancel.cancel()


def _cleanup() -> None:
    """Cleanup handler called on exit."""
    _logger.info("netrecon shutdown complete")


def setup_signal_handlers() -> None:
    """Set up signal handlers for graceful shutdown."""
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    # Register cleanup on exit
    atexit.register(_cleanup)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netrecon",
        description="netrecon - discover hosts, open ports and exposure on a network segment",
    )
    parser.add_argument(
        "target",
        nargs="?",
        help="Address, range (192.168.1.10-20) or CIDR (192.168.1.0/24); overrides the config file",
    )
    parser.add_argument(
        "--scan-type",
        choices=[t.value for t in ScanType],
        help="Scan type (default: ping-sweep)",
    )
    parser.add_argument(
        "--technique",
        choices=[t.value for t in PortScanTechnique],
        help="Port scan technique (default: tcp-connect)",
    )
    parser.add_argument("--ports", help="Comma-separated port list, e.g. 22,80,443")
    parser.add_argument("--extended-ports", action="store_true", help="Scan the extended port list")
    parser.add_argument("--timeout", help="Probe timeout in milliseconds (default: 3000)")
    parser.add_argument("--threads", help="Concurrent workers (default: 50)")
    parser.add_argument("--no-resolve", action="store_true", help="Skip reverse DNS lookups")
    parser.add_argument("--no-services", action="store_true", help="Skip service fingerprinting")
    parser.add_argument("--no-banners", action="store_true", help="Identify services by port only")
    parser.add_argument("--os", action="store_true", help="Infer operating systems")
    parser.add_argument("--traceroute", action="store_true", help="Trace routes to key hosts")
    parser.add_argument("--no-gateway", action="store_true", help="Skip gateway and external IP detection")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to configuration file (default: config.json)",
    )
    parser.add_argument("--csv", type=Path, help="Write hosts to a CSV file")
    parser.add_argument("--json", type=Path, help="Write the full result to a JSON file")
    parser.add_argument("--graph", type=Path, help="Write a gateway/host graph as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-V", "--version", action="store_true", help="Show version and exit")
    return parser


def build_configuration(args: argparse.Namespace, config: AppConfig) -> ScanConfiguration:
    """Merge command-line flags over the config file's scan section.

    Raises:
        ValueError: no target was given on the command line or in the config.
    """
    overrides = {
        "scan_type": args.scan_type,
        "port_technique": args.technique,
        "ports": args.ports,
        "timeout_ms": args.timeout,
        "threads": args.threads,
        "resolve_hostnames": False if args.no_resolve else None,
        "detect_services": False if args.no_services else None,
        "grab_banners": False if args.no_banners else None,
        "detect_os": True if args.os else None,
        "perform_traceroute": True if args.traceroute else None,
        "detect_gateway": False if args.no_gateway else None,
    }

    if config.scan is not None:
        scan = config.scan.with_overrides(target_range=args.target, **overrides)
    elif args.target:
        data = {k: v for k, v in overrides.items() if v is not None}
        scan = ScanConfiguration.model_validate({"target_range": args.target, **data})
    else:
        raise ValueError("No target given; pass one on the command line or set scan.target_range")

    if args.extended_ports:
        scan = ScanConfiguration.model_validate({**scan.model_dump(exclude={"ports"}), "extended_ports": True})
    return scan


def print_summary(result: ScanResult) -> None:
    """Print a host table and totals to stdout."""
    print(f"\nScan of {result.target_range}: {result.state.value} in {result.duration_seconds:.1f}s")
    if result.error:
        print(f"Error: {result.error}")

    if result.gateway:
        print(f"Gateway: {result.gateway.default_gateway or 'not detected'}  External IP: {result.gateway.external_ip}")

    if not result.hosts:
        print("No hosts found")
        return

    print(f"\n{'Address':<16} {'Name':<28} {'MAC':<18} {'RTT':>6}  {'Risk':<8} Ports")
    for host in result.hosts:
        rtt = f"{host.response_time_ms}ms" if host.response_time_ms >= 0 else "-"
        ports = ",".join(str(p) for p in host.sorted_ports) or "-"
        name = (host.hostname or host.vendor)[:28]
        print(f"{host.ip:<16} {name:<28} {host.mac or '-':<18} {rtt:>6}  {host.risk_level.label:<8} {ports}")
        if host.os_guess:
            print(f"{'':<16} OS: {host.os_guess}")
        for description in host.sorted_vulnerabilities:
            print(f"{'':<16} ! {description}")

    print(f"\n{result.hosts_up} hosts up, {result.open_port_count} open ports")


def main() -> None:
    """Main entry point."""
    global _cancel

    args = build_parser().parse_args()

    # Handle version flag
    if args.version:
        from . import __version__

        print(f"netrecon v{__version__}")
        sys.exit(0)

    try:
        config = AppConfig.load_or_default(args.config)
    except (ValidationError, ValueError) as e:
        print(f"Invalid config file {args.config}: {e}")
        sys.exit(1)

    # Setup logging
    log_level = "DEBUG" if args.verbose else config.settings.log_level
    setup_logging(log_level, config.settings.log_dir)

    try:
        scan_config = build_configuration(args, config)
    except (ValidationError, ValueError) as e:
        print(f"Invalid scan configuration: {e}")
        sys.exit(1)

    # Setup signal handlers for graceful shutdown
    _cancel = CancelToken()
    setup_signal_handlers()

    _logger.info(f"Starting netrecon against {scan_config.target_range}")

    orchestrator = ScanOrchestrator(engine=config.engine)
    result = orchestrator.scan(scan_config, progress=print, cancel=_cancel)

    print_summary(result)

    if args.csv:
        write_csv(result, args.csv)
    if args.json:
        write_json(result, args.json)
    if args.graph:
        write_json(to_graph(result), args.graph)

    if result.state == ScanState.FAILED:
        sys.exit(1)


if __name__ == "__main__":
    main()
