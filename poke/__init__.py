"""Command-line access to the methods of a Solidity contract."""

__version__ = "0.1.0"
