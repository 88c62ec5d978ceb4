"""
FossFLOW MCP
============

MCP server for building isometric architecture diagrams.

Supports:
- Diagrams in full (identifier-addressed) and compact (position-addressed) formats
- Node, connector, rectangle and text box editing
- Format detection, validation and conversion
- ASCII previews and Markdown summaries

Transport modes:
- STDIO (default): For Claude Desktop and other MCP clients
- SSE: Server-Sent Events over HTTP
- HTTP: Streamable HTTP transport
"""

__version__ = "0.1.0"

from .server import create_server, mcp

__all__ = ["create_server", "mcp", "__version__"]
