"""FixRx client session and authentication core."""

__version__ = "0.1.0"
