"""Stream processing: marker grammar, block extraction, turn accumulation."""

from copilot_stream.stream.reveal import reveal_prefix, safe_reveal_cutoff

__all__ = ["reveal_prefix", "safe_reveal_cutoff"]
