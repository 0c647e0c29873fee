"""In-process completion service that replays queued replies.

Registered through ``CompletionFactory.register`` by tests and embedding code; it is not a
configurable provider. Each queued item is either reply text or an exception to
raise; every call is recorded so callers can assert on prompts and parameters.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from specforge.completion.base import (
    BaseCompletionService,
    Completion,
    InvalidResponseError,
    Message,
)


@dataclass(frozen=True, slots=True)
class RecordedCall:
    messages: tuple[Message, ...]
    temperature: float
    max_tokens: int

    @property
    def prompt(self) -> str:
        return "\n\n".join(message.content for message in self.messages)


class ScriptedCompletionService(BaseCompletionService):
    provider_name = "scripted"

    def __init__(
        self,
        replies: Iterable[str | BaseException] = (),
        *,
        model: str = "scripted-model",
        default_reply: str | None = None,
    ) -> None:
        super().__init__(model=model)
        self._replies: deque[str | BaseException] = deque(replies)
        self._default_reply = default_reply
        self.calls: list[RecordedCall] = []

    def queue(self, *replies: str | BaseException) -> None:
        self._replies.extend(replies)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_call(self) -> RecordedCall | None:
        return self.calls[-1] if self.calls else None

    async def _complete(
        self,
        messages: Sequence[Message],
        *,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        self.calls.append(
            RecordedCall(messages=tuple(messages), temperature=temperature, max_tokens=max_tokens)
        )
        if self._replies:
            reply = self._replies.popleft()
        elif self._default_reply is not None:
            reply = self._default_reply
        else:
            raise InvalidResponseError("no scripted reply queued", provider=self.provider_name)
        if isinstance(reply, BaseException):
            raise reply
        return Completion(content=reply, model=self.model, provider=self.provider_name)


__all__ = ["RecordedCall", "ScriptedCompletionService"]
