"""Agent package: tool catalog, stream parsing, dispatch and the orchestration loop."""
