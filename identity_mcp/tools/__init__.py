"""
MCP tools for Identity MCP.

- system: greeting, status and the authenticated whoami tool
"""
