"""turnwright - a conversational coding agent that turns model replies into safe project edits."""

__version__ = "0.1.0"
