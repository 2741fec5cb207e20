"""Subnet and chain deployment onto an existing validator fleet."""

__version__ = "0.1.0"
