from .config import Settings
from .consultation import ConsultationService, ModelResponder, build_system_prompt
from .embeddings import EmbeddingProvider, EmbeddingUnavailable, HashingEmbedder, HostedEmbedder, cosine_similarity
from .fallback import FallbackResponder, medical_disclaimer, with_disclaimer
from .gateway import GenerationGateway, GenerationOutcome, ProviderError, ProviderThrottled, RateLimiter
from .knowledge import KnowledgeStore, KnowledgeStoreFrozen
from .knowledge_data import MEDICAL_KNOWLEDGE
from .models import (
    SEVERITY_EMERGENCY,
    SEVERITY_LEVELS,
    SEVERITY_ROUTINE,
    SEVERITY_URGENT,
    KnowledgeEntry,
    RetrievalResult,
    SeverityAssessment,
)
from .severity import SeverityClassifier

__all__ = [
    "MEDICAL_KNOWLEDGE",
    "SEVERITY_EMERGENCY",
    "SEVERITY_LEVELS",
    "SEVERITY_ROUTINE",
    "SEVERITY_URGENT",
    "ConsultationService",
    "EmbeddingProvider",
    "EmbeddingUnavailable",
    "FallbackResponder",
    "GenerationGateway",
    "GenerationOutcome",
    "HashingEmbedder",
    "HostedEmbedder",
    "KnowledgeEntry",
    "KnowledgeStore",
    "KnowledgeStoreFrozen",
    "ModelResponder",
    "ProviderError",
    "ProviderThrottled",
    "RateLimiter",
    "RetrievalResult",
    "SeverityAssessment",
    "SeverityClassifier",
    "Settings",
    "build_system_prompt",
    "cosine_similarity",
    "medical_disclaimer",
    "with_disclaimer",
]
