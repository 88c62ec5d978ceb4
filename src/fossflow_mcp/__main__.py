#!/usr/bin/env python3
"""
FossFLOW MCP - Entry Point

Supports multiple transport modes:
- stdio: Standard I/O (default, for Claude Desktop)
- sse: Server-Sent Events over HTTP
- http: Streamable HTTP transport
"""

import argparse
import logging
import os
import sys

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def main():
    parser = argparse.ArgumentParser(
        description="MCP server for isometric diagrams",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with STDIO transport (default, for Claude Desktop)
  fossflow-mcp

  # Run with SSE transport on port 8080
  fossflow-mcp --transport sse --port 8080

  # Return compact diagrams from create_diagram
  fossflow-mcp --output-format compact

  # Verbose logging (always written to stderr)
  fossflow-mcp --log-level DEBUG
"""
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "http"],
        default="stdio",
        help="Transport mode (default: stdio)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for SSE/HTTP transport (default: 8080)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Host to bind for SSE/HTTP transport (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--output-format",
        choices=["full", "compact"],
        default=os.environ.get("FOSSFLOW_MCP_OUTPUT_FORMAT", "full"),
        help="Default format of diagrams created by create_diagram (default: full)"
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=os.environ.get("FOSSFLOW_MCP_LOG_LEVEL", "WARNING").upper(),
        help="Logging level (default: WARNING)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__import__('fossflow_mcp').__version__}"
    )

    args = parser.parse_args()

    # stdout carries the STDIO protocol, so logs go to stderr
    logging.basicConfig(
        level=getattr(logging, args.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # Set configuration environment variables
    os.environ["FOSSFLOW_MCP_OUTPUT_FORMAT"] = args.output_format
    os.environ["FOSSFLOW_MCP_LOG_LEVEL"] = args.log_level

    # Import server after setting environment
    from .server import mcp

    if args.transport == "stdio":
        # Standard STDIO transport (default)
        mcp.run()

    elif args.transport == "sse":
        # SSE transport
        try:
            from mcp.server.sse import SseServerTransport
            from starlette.applications import Starlette
            from starlette.responses import Response
            from starlette.routing import Mount, Route
            import uvicorn
        except ImportError as e:
            print(f"Error: SSE transport requires additional dependencies: {e}", file=sys.stderr)
            print("Install with: pip install 'fossflow-mcp[sse]'", file=sys.stderr)
            sys.exit(1)

        sse = SseServerTransport("/messages/")

        async def handle_sse(request):
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as streams:
                await mcp._mcp_server.run(
                    streams[0], streams[1], mcp._mcp_server.create_initialization_options()
                )
            return Response()

        app = Starlette(
            routes=[
                Route("/sse", endpoint=handle_sse),
                Mount("/messages/", app=sse.handle_post_message),
            ],
        )

        print(f"Starting SSE server on {args.host}:{args.port}", file=sys.stderr)
        print(f"SSE endpoint: http://{args.host}:{args.port}/sse", file=sys.stderr)
        uvicorn.run(app, host=args.host, port=args.port)

    elif args.transport == "http":
        # Streamable HTTP transport
        try:
            import uvicorn
        except ImportError as e:
            print(f"Error: HTTP transport requires additional dependencies: {e}", file=sys.stderr)
            print("Install with: pip install 'fossflow-mcp[http]'", file=sys.stderr)
            sys.exit(1)

        print(f"Starting HTTP server on {args.host}:{args.port}", file=sys.stderr)
        print(f"MCP endpoint: http://{args.host}:{args.port}/mcp", file=sys.stderr)
        uvicorn.run(mcp.streamable_http_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
