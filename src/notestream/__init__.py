"""notestream: streaming AI dispatch for sticky notes."""

__version__ = "0.3.0"
