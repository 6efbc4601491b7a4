"""Streaming copilot client.

Turns the incremental event stream of a copilot backend into an ordered
sequence of typed content blocks.
"""

__version__ = "0.1.0"
