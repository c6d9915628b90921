from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0
    reasoning: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output + self.reasoning

    @classmethod
    def from_payload(cls, payload: object) -> TokenUsage | None:
        if not isinstance(payload, dict):
            return None
        return cls(
            input=_non_negative(payload.get("input")),
            output=_non_negative(payload.get("output")),
            reasoning=_non_negative(payload.get("reasoning")),
        )


@dataclass(frozen=True)
class SessionSummary:
    id: str
    title: str
    part: int | None = None


@dataclass(frozen=True)
class MessageSummary:
    id: str
    tokens: TokenUsage | None = field(default=None)


@dataclass(frozen=True)
class ModelRef:
    provider_id: str
    model_id: str


def _non_negative(value: object) -> int:
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    return max(0, number)
