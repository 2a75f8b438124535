"""Windowed chat: rendering window, scroll anchoring, reply scheduling, sessions."""
