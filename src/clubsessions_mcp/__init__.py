"""Club Sessions MCP - quota-aware YouTube session feed for the club website."""

__version__ = "0.1.0"
