"""Chat history export, configuration records, structured errors and an MCP service."""

__version__ = "0.1.0"