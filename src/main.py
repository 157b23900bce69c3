#!/usr/bin/env python3
"""
Color Me Shop MCP Server - Main entry point
"""
from colorme_server import config, create_colorme_server, logger


def main():
    """Run the Color Me Shop MCP server with configurable transport."""
    server = create_colorme_server()

    transport = config.transport.lower()
    host = config.host
    port = config.port

    if transport == "sse":
        # Server-Sent Events for web integrations
        logger.configuration_event(f"Starting Color Me Shop SSE server on {host}:{port}")
        server.run(transport="sse", host=host, port=port)
    elif transport == "http" or transport == "streamable-http":
        # HTTP/Streamable HTTP (recommended for web)
        logger.configuration_event(f"Starting Color Me Shop HTTP server on {host}:{port}")
        server.run(transport="streamable-http", host=host, port=port)
    elif transport == "stdio":
        # The OAuth bridge needs browser-reachable HTTP endpoints
        raise ValueError("stdio transport cannot serve the OAuth endpoints. Supported: sse, streamable-http")
    else:
        raise ValueError(f"Unknown transport type: {transport}. Supported: sse, streamable-http")


if __name__ == "__main__":
    main()
