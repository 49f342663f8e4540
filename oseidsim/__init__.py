"""Simulated smart card and reader components: hex helpers, card memory, console I/O, serial link, reader driver and CCID logic."""

__version__ = "0.1.0"