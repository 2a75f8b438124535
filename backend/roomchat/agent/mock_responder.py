"""Mock responder standing in for a real conversational partner.

This module provides a MockResponder that produces deterministic synthetic
replies without any LLM call. It lets the reply scheduling, composing
indicator and windowing flow be exercised end to end.

Future LLM Integration:
    Replace MockResponder with a responder that sends the room history to a
    model and returns its answer under the same ``reply_to`` interface.
"""
from typing import Callable, Optional

from roomchat.messages import Message, Sender, now_ms

DEFAULT_REPLY_TEXT = "Gemini response (simulated)"


class MockResponder:
    """Produces a fixed synthetic reply for every triggering message."""

    def __init__(
        self,
        text: str = DEFAULT_REPLY_TEXT,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the mock responder.

        Args:
            text: Reply text used for every reply.
            clock: Millisecond clock used to stamp replies.
        """
        self.text = text
        self.clock = clock

    def reply_to(self, trigger: Optional[Message]) -> Message:
        """Build the synthetic reply owed for ``trigger``.

        Args:
            trigger: The user message that started the reply cycle.

        Returns:
            A synthetic Message stamped with the current time.
        """
        return Message(
            sender=Sender.SYNTHETIC,
            text=self.text,
            timestamp=self.clock(),
        )

