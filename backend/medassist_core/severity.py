from __future__ import annotations

from .models import SEVERITY_EMERGENCY, SEVERITY_ROUTINE, SEVERITY_URGENT, SeverityAssessment


class SeverityClassifier:
    """Keyword triage run before any model call.

    Emergency keywords are checked before urgent ones and the first match
    wins. Matching is plain substring search on lower-cased text.
    """

    EMERGENCY_KEYWORDS = (
        "chest pain",
        "difficulty breathing",
        "breathing difficulty",
        "short of breath",
        "shortness of breath",
        "hard to breathe",
        "trouble breathing",
        "can't breathe",
        "cannot breathe",
        "cant breathe",
        "struggling to breathe",
        "stroke",
        "face drooping",
        "slurred speech",
        "heart attack",
        "severe headache",
        "severe abdominal pain",
        "severe burns",
        "severe bleeding",
        "bleeding heavily",
        "won't stop bleeding",
        "loss of consciousness",
        "lost consciousness",
        "unconscious",
        "collapse",
        "anaphylaxis",
        "anaphylactic",
        "severe allergic reaction",
        "throat is closing",
        "seizure",
        "convulsion",
        "choking",
        "poisoning",
        "poisoned",
        "overdose",
        "suicid",
        "self-harm",
        "self harm",
        "kill myself",
    )

    URGENT_KEYWORDS = (
        "persistent fever",
        "high fever",
        "vomiting blood",
        "coughing up blood",
        "blood in vomit",
        "severe dizziness",
        "vision loss",
        "loss of vision",
        "lost my vision",
        "sudden blurred vision",
        "vision problems",
        "severe nausea",
        "confusion",
        "dehydration",
        "dehydrated",
        "severe pain",
        "broken bone",
    )

    def assess(self, text: str) -> SeverityAssessment:
        lowered = (text or "").lower()
        for keyword in self.EMERGENCY_KEYWORDS:
            if keyword in lowered:
                return SeverityAssessment(SEVERITY_EMERGENCY, keyword)
        for keyword in self.URGENT_KEYWORDS:
            if keyword in lowered:
                return SeverityAssessment(SEVERITY_URGENT, keyword)
        return SeverityAssessment(SEVERITY_ROUTINE)

    def classify(self, text: str) -> str:
        return self.assess(text).level

    def is_emergency(self, text: str) -> bool:
        return self.assess(text).is_emergency
