"""Roomchat: chat rooms with windowed history and simulated replies."""

__version__ = "0.1.0"
