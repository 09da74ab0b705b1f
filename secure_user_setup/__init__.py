"""Replace a cloud image's default account with a named admin account."""

__version__ = "1.0.0"
