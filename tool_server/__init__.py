"""
Prescription tool server

Components:
- registry: named, schema-validated tools and the uniform text result envelope
- tools: the prescription tool catalogue over the record store and retriever
- main: MCP server process on stdio
- client: spawns the server and calls tools from another process
"""
