"""Assessment validation engine: indexes training documents and validates requirements against them."""

__version__ = "0.1.0"
