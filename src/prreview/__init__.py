"""prreview: pull request review MCP server backed by the GitHub CLI."""
