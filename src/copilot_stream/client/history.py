"""Conversation history management."""

from copilot_stream.events.models import HistoryEntry
from copilot_stream.stream.models import Message


class ConversationHistory:
    """
    Ordered user/assistant messages of one conversation.

    Features:
    - Assistant placeholder added with each user message
    - Placeholder replaced by the final (or failed) message
    - Rolling window of the most recent messages
    """

    def __init__(self, max_messages: int = 50):
        self.max_messages = max_messages
        self._messages: list[Message] = []

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    @property
    def last_message(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def add_exchange(self, text: str) -> Message:
        """Add a user message and an empty assistant placeholder. Returns the user message."""
        user = Message(role="user", content=text)
        self._messages.append(user)
        self._messages.append(Message(role="assistant"))
        self._trim()
        return user

    def complete(self, message: Message) -> None:
        """Replace the trailing assistant placeholder, or append if there is none."""
        last = self.last_message
        if last is not None and last.role == "assistant" and not last.content and not last.content_blocks:
            self._messages[-1] = message
        else:
            self._messages.append(message)
        self._trim()

    def drop_last_exchange(self) -> str | None:
        """
        Remove the last user message and everything after it.

        Returns:
            The removed user text, or None if there was no user message
        """
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].role == "user":
                text = self._messages[index].content
                del self._messages[index:]
                return text
        return None

    def drop_failed_exchange(self, text: str) -> bool:
        """
        Remove the trailing exchange for ``text`` if its answer failed.

        An answer counts as failed when it carries an error or is still the
        empty placeholder. Completed exchanges are never removed.

        Returns:
            True if the exchange was removed
        """
        if len(self._messages) < 2:
            return False
        user, answer = self._messages[-2], self._messages[-1]
        if user.role != "user" or user.content != text or answer.role != "assistant":
            return False
        if answer.error is None and (answer.content or answer.content_blocks):
            return False
        del self._messages[-2:]
        return True

    def as_turn_history(self) -> list[HistoryEntry]:
        """History to send with the next turn; failed and empty messages are skipped."""
        return [
            HistoryEntry(role=m.role, content=m.content)
            for m in self._messages
            if m.content and m.error is None
        ]

    def clear(self) -> None:
        self._messages.clear()

    def _trim(self) -> None:
        if len(self._messages) > self.max_messages:
            del self._messages[: len(self._messages) - self.max_messages]
