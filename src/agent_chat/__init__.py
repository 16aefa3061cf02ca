"""Agent conversations over an OpenRouter-compatible chat completion API."""

__version__ = "0.1.0"
