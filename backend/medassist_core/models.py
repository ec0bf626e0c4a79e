from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


SEVERITY_EMERGENCY = "EMERGENCY"
SEVERITY_URGENT = "URGENT"
SEVERITY_ROUTINE = "ROUTINE"
SEVERITY_LEVELS = (SEVERITY_EMERGENCY, SEVERITY_URGENT, SEVERITY_ROUTINE)


@dataclass(frozen=True)
class SeverityAssessment:
    level: str
    matched_keyword: str | None = None

    @property
    def is_emergency(self) -> bool:
        return self.level == SEVERITY_EMERGENCY


@dataclass(frozen=True)
class KnowledgeEntry:
    entry_id: str
    topic: str
    content: str
    symptoms: tuple[str, ...] = ()
    severity: str = "unknown"
    treatment: str = ""
    emergency_signs: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    def embedding_text(self) -> str:
        return f"{self.content} {' '.join(self.symptoms)}".strip()


@dataclass(frozen=True)
class RetrievalResult:
    topic: str
    content: str
    symptoms: list[str]
    severity: str
    similarity: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "content": self.content,
            "symptoms": list(self.symptoms),
            "severity": self.severity,
            "similarity": round(self.similarity, 4),
        }
