"""testsmith: queue source files, let an LLM improve their tests, open pull requests."""

__version__ = "0.1.0"
