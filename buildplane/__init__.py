"""buildplane — build orchestration for multi-module service projects."""

__version__ = "0.1.0"
