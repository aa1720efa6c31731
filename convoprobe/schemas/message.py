from typing import Any

from pydantic import BaseModel, ConfigDict

from convoprobe.schemas.common import MessageRole


class ContentBlock(BaseModel):
    """One typed part of a multi-part message. Unknown keys are kept."""

    type: str
    text: str | None = None

    model_config = ConfigDict(extra="allow")


class Message(BaseModel):
    role: MessageRole
    content: str | list[ContentBlock] = ""
    # Raw tool call dicts, either {"id", "name", "args"} or OpenAI {"id", "function": {...}}
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    id: str | None = None
    metadata: dict[str, Any] | None = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def text(self) -> str:
        """Text used for prompts and judging.

        Only ``text`` blocks contribute; other blocks render as ``[type]``.
        """
        if isinstance(self.content, str):
            return self.content
        parts: list[str] = []
        for block in self.content:
            if block.type == "text":
                if block.text:
                    parts.append(block.text)
            else:
                parts.append(f"[{block.type}]")
        return "\n".join(parts)

    def to_wire(self) -> dict[str, Any]:
        """Serialize for connector request bodies."""
        return self.model_dump(mode="json", exclude_none=True)


def tool_call_name(tool_call: dict[str, Any]) -> str:
    return tool_call.get("name") or tool_call.get("function", {}).get("name", "")


def tool_call_id(tool_call: dict[str, Any]) -> str | None:
    value = tool_call.get("id")
    return value if isinstance(value, str) and value else None
