"""Synthetic conversational partner."""
from .mock_responder import DEFAULT_REPLY_TEXT, MockResponder

__all__ = ["DEFAULT_REPLY_TEXT", "MockResponder"]
