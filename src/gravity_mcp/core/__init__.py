"""Core infrastructure for gravity-mcp: request context, logging, responses and the Form Store."""
