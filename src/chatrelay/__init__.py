"""ChatRelay: a streaming chat relay with session persistence."""

__version__ = "0.1.0"
