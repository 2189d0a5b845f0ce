"""MCP stdio bridge: framing, JSON-RPC client, session, tool resolution."""
