"""
Completion Provider Protocol

The decision loop and bot generator only depend on this interface. The
result is a plain dictionary:

- success: bool
- content: generated text (on success)
- usage: {"input_tokens": int, "output_tokens": int} (on success)
- model: model that answered (or was last tried)
- error / error_type: failure description (on failure)
"""

from typing import Any, Protocol


class CompletionProviderProtocol(Protocol):
    async def complete(
        self,
        task_type: str,
        messages: list[dict[str, Any]],
        model: str | None = None,
        session_id: str | None = None,
    ) -> dict[str, Any]:
        ...
