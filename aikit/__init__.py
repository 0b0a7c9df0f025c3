"""AIKit orchestrator: drives externally registered tools through an LLM agent loop."""

__version__ = "0.1.0"
