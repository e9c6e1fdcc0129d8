"""Result dataclasses returned by tool entry points and the batch coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ToolResult:
    text: str
    is_error: bool = False

    @classmethod
    def ok(cls, text: str) -> 'ToolResult':
        return cls(text, False)

    @classmethod
    def error(cls, text: str) -> 'ToolResult':
        return cls(text, True)

    @property
    def exit_code(self) -> int:
        return 1 if self.is_error else 0


@dataclass(frozen=True)
class TargetOutcome:
    id: str
    success: bool
    message: str


@dataclass
class BatchResult:
    per_target: list[TargetOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.per_target if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.per_target if not r.success)

    @property
    def all_failed(self) -> bool:
        return bool(self.per_target) and self.success_count == 0

    def as_dict(self) -> dict[str, object]:
        return {
            'per_target': [
                {'id': r.id, 'success': r.success, 'message': r.message}
                for r in self.per_target
            ],
            'success_count': self.success_count,
            'failure_count': self.failure_count,
        }
