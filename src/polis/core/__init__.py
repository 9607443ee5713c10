"""Core domain, ports and error taxonomy (no I/O)."""
