"""agentdeck: run and switch between several interactive agent CLIs."""

__version__ = "1.0.0"
