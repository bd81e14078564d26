"""Usage accounting and model arena for an LLM routing proxy."""

__version__ = "0.1.0"
