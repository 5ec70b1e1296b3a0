"""MCP server for Microfiche."""
