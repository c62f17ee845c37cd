"""Paired WebPageTest / local Lighthouse trace collection for Lantern."""

__version__ = "0.1.0"
