"""genstudio: generation orchestration for video and image AI providers."""

__version__ = "0.1.0"
