"""GTD task sync and engagement suggestion engine."""

__version__ = "0.1.0"
