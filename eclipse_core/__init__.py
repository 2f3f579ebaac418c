"""
Eclipse Agent Core - Memory and task tracking for autonomous coding agents.

Per-project semantic memory, a decision log and a guarded task lifecycle,
served over MCP.
"""

__version__ = "0.1.0"


def serve() -> None:
    """Run the agent core MCP server.

    This is called when you run: python -m eclipse_core.server
    Or when the assistant starts the agent core as an MCP server.
    """
    from eclipse_core.server import serve as _serve
    _serve()


__all__ = ["serve", "__version__"]
