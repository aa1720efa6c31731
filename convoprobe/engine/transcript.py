"""Growing conversation transcript with tool-call pairing validation.

Every ``tool`` message must answer a tool call id emitted by an earlier
``assistant`` message. Violations raise ``InvalidTranscriptError`` at append
time so a broken connector response never reaches the judge or storage.
"""

from __future__ import annotations

from collections.abc import Iterable

from convoprobe.core.exceptions import InvalidTranscriptError
from convoprobe.schemas.common import MessageRole
from convoprobe.schemas.message import Message, tool_call_id


class Transcript:
    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = []
        self._tool_call_ids: set[str] = set()
        self.extend(messages)

    def append(self, message: Message) -> None:
        self.extend([message])

    def extend(self, messages: Iterable[Message]) -> None:
        """Append a batch; nothing is appended if any message is invalid."""
        batch = list(messages)
        known = set(self._tool_call_ids)
        for message in batch:
            _check(message, known)
        self._tool_call_ids = known
        self._messages.extend(batch)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def last_role(self) -> str | None:
        """Role of the last non-system message, if any."""
        for message in reversed(self._messages):
            if message.role != MessageRole.SYSTEM:
                return message.role
        return None

    @property
    def conversation_count(self) -> int:
        """Number of user and assistant messages."""
        return sum(
            1 for m in self._messages
            if m.role in (MessageRole.USER, MessageRole.ASSISTANT)
        )

    @property
    def message_ids(self) -> set[str]:
        return {m.id for m in self._messages if m.id}

    def without_system(self) -> list[Message]:
        return [m for m in self._messages if m.role != MessageRole.SYSTEM]

    def __len__(self) -> int:
        return len(self._messages)


def _check(message: Message, known: set[str]) -> None:
    """Validate one message against ``known`` tool call ids, adding any it emits."""
    if message.role == MessageRole.TOOL:
        if not message.tool_call_id:
            raise InvalidTranscriptError("Tool message is missing tool_call_id")
        if message.tool_call_id not in known:
            raise InvalidTranscriptError(
                f"Tool message references unknown tool call id '{message.tool_call_id}'"
            )
    if message.role == MessageRole.ASSISTANT and message.tool_calls:
        for tc in message.tool_calls:
            call_id = tool_call_id(tc)
            if call_id:
                known.add(call_id)
