"""MCP server assembly and command-line entry point."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from fastmcp import FastMCP

from cr_status_mcp import __version__
from cr_status_mcp.tools import register_resource_status_tools

logger = logging.getLogger("mcp-server")

TRANSPORTS = ("stdio", "http", "sse")


def create_server(name: str = "cr-status-mcp", non_destructive: bool = False) -> FastMCP:
    server = FastMCP(name=name)
    register_resource_status_tools(server, non_destructive)
    return server


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cr-status-mcp",
        description="MCP server exposing normalized Kubernetes custom resource status",
    )
    parser.add_argument(
        "--transport",
        choices=TRANSPORTS,
        default=os.environ.get("MCP_TRANSPORT", "stdio"),
        help="MCP transport (default: %(default)s, env MCP_TRANSPORT)",
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("MCP_HOST", "127.0.0.1"),
        help="bind address for http/sse transports (env MCP_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("MCP_PORT", "8000")),
        help="port for http/sse transports (env MCP_PORT)",
    )
    parser.add_argument(
        "--non-destructive",
        "--read-only",
        action="store_true",
        default=False,
        help="only register read-only tools",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("MCP_LOG_LEVEL", "INFO"),
        help="logging level (env MCP_LOG_LEVEL)",
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    # stdout carries the stdio transport
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    server = create_server(non_destructive=args.non_destructive)
    logger.info(f"Starting cr-status-mcp {__version__} over {args.transport}")
    if args.transport == "stdio":
        server.run(transport="stdio")
    else:
        server.run(transport=args.transport, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
