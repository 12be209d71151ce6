"""Network reconnaissance engine: host discovery, port scanning and risk heuristics."""

__version__ = "0.1.0"
