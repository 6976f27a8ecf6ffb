"""MCP server exposing the MobileOrg phases as tools."""
