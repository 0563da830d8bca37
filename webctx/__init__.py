"""Per-request context for web handlers: input, flow control, rendering, errors and debug output."""

__version__ = "0.1.0"

__all__ = ["context", "debug", "errors", "fs", "message", "response"]