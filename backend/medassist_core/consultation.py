from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Sequence

from memory import ChatSessionManager
from medassist_tools import ExtractionCascade, UploadIOError, store_upload, validate_upload

from .config import Settings
from .fallback import FallbackResponder, emergency_alert, severity_guidance, with_disclaimer
from .gateway import GenerationGateway, GenerationOutcome
from .knowledge import KnowledgeStore
from .models import SEVERITY_ROUTINE, RetrievalResult, SeverityAssessment
from .providers import chat_provider_candidates, complete_chat
from .severity import SeverityClassifier

logger = logging.getLogger(__name__)

_BASE_SYSTEM_PROMPT = """You are a compassionate and knowledgeable medical AI assistant for a healthcare platform.

CRITICAL REQUIREMENTS:
- Always respond in English, regardless of the input language
- Maintain conversation continuity by referring to previous symptoms discussed
- Build on earlier medical discussions and treatment suggestions in this conversation

IMPORTANT GUIDELINES:
- Always recommend consulting qualified healthcare professionals
- Provide helpful health information while being clear about limitations
- Be empathetic and supportive, and use simple language
- Never provide definitive diagnoses
- Suggest when to seek immediate medical attention and which specialist is relevant
- Include relevant lifestyle and preventive advice

EMERGENCY PROTOCOL:
- If symptoms suggest an emergency, immediately recommend emergency services ({number}) and the nearest emergency department

Do not add your own medical disclaimer; one is appended automatically."""


def build_system_prompt(
    *,
    knowledge: Sequence[RetrievalResult] = (),
    report_context: str = "",
    assessment: SeverityAssessment | None = None,
    emergency_number: str = "999",
) -> str:
    sections = [_BASE_SYSTEM_PROMPT.format(number=emergency_number)]
    if knowledge:
        sections.append(
            "MEDICAL KNOWLEDGE:\n" + "\n".join(f"- {hit.topic}: {hit.content}" for hit in knowledge)
        )
    if report_context:
        sections.append(f"RECENT REPORT (extracted text):\n{report_context}")
    if assessment is not None and assessment.level != SEVERITY_ROUTINE:
        sections.append(f"TRIAGE NOTE:\n{severity_guidance(assessment, emergency_number)}")
    return "\n\n".join(sections)


class ModelResponder:
    """Asks each configured chat provider in turn, every call going through the gateway."""

    def __init__(
        self,
        gateway: GenerationGateway,
        *,
        timeout_seconds: float = 25.0,
        providers: Callable[[], list[dict[str, Any]]] = chat_provider_candidates,
        complete: Callable[..., str | None] = complete_chat,
    ) -> None:
        self.gateway = gateway
        self.timeout_seconds = timeout_seconds
        self._providers = providers
        self._complete = complete

    def generate(self, *, system_prompt: str, history: list[dict[str, str]], user_message: str) -> GenerationOutcome:
        providers = self._providers()
        if not providers:
            logger.info("chat model unavailable: no provider key configured")
            return GenerationOutcome(ok=False, error="no chat provider configured", attempts=0)

        attempts = 0
        errors: list[str] = []
        for provider in providers:
            provider_name = str(provider.get("provider") or "unknown")
            outcome = self.gateway.call(
                lambda provider=provider: self._complete(
                    provider=provider,
                    system_prompt=system_prompt,
                    history=history,
                    user_message=user_message,
                    timeout_seconds=self.timeout_seconds,
                ),
                label=f"chat ({provider_name})",
            )
            attempts += outcome.attempts
            if outcome.ok:
                logger.info("chat model provider used (%s)", provider_name)
                return GenerationOutcome(ok=True, text=outcome.text, attempts=attempts)
            errors.append(f"{provider_name}: {outcome.error}")
        return GenerationOutcome(ok=False, error="; ".join(errors), attempts=attempts)


def _conversation_turns(messages: list[dict[str, Any]]) -> list[dict[str, str]]:
    return [
        {"role": message["role"], "content": message["content"]}
        for message in messages
        if message["role"] in {"user", "assistant"}
    ]


class ConsultationService:
    """The consultation operations exposed over HTTP.

    Severity is classified before any model call, so emergency guidance never
    depends on the network. Every response returned to the caller ends with
    the medical disclaimer exactly once.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        sessions: ChatSessionManager,
        knowledge: KnowledgeStore,
        cascade: ExtractionCascade,
        responder: ModelResponder,
        classifier: SeverityClassifier | None = None,
        fallback: FallbackResponder | None = None,
    ) -> None:
        self.settings = settings
        self.sessions = sessions
        self.knowledge = knowledge
        self.cascade = cascade
        self.responder = responder
        self.classifier = classifier or SeverityClassifier()
        self.fallback = fallback or FallbackResponder(emergency_number=settings.emergency_number)
        self.upload_dir = Path(settings.upload_dir)

    def start_session(self, owner_id: str, title: str | None = None) -> dict[str, Any]:
        session = self.sessions.start(owner_id, title)
        greeting = session["messages"][0]
        return {
            "session_id": session["session_id"],
            "title": session["title"],
            "greeting_text": greeting["content"],
            "created_at": session["created_at"],
            "is_active": session["is_active"],
        }

    def send_message(self, session_id: str, owner_id: str, text: str) -> dict[str, Any]:
        self.sessions.append_message(session_id, owner_id, role="user", content=text, message_kind="text")
        question = text.strip()
        assessment = self.classifier.assess(question)

        if assessment.is_emergency:
            logger.warning("emergency keyword %r detected in session %s", assessment.matched_keyword, session_id)
            response_text = with_disclaimer(
                emergency_alert(assessment, self.settings.emergency_number),
                self.settings.emergency_number,
            )
            self.sessions.append_message(
                session_id,
                owner_id,
                role="assistant",
                content=response_text,
                message_kind="emergency_alert",
            )
            return {
                "session_id": session_id,
                "response_text": response_text,
                "message_kind": "emergency_alert",
                "is_emergency": True,
                "context_found": False,
                "severity": assessment.level,
            }

        knowledge = self.knowledge.query(question, self.settings.retrieval_limit)
        report_text = self.sessions.latest_report_text(session_id, owner_id)
        report_context = (report_text or "")[: self.settings.report_context_chars]
        recent = self.sessions.recent_messages(session_id, owner_id, self.settings.history_window)
        history = _conversation_turns(recent[:-1])

        outcome = self.responder.generate(
            system_prompt=build_system_prompt(
                knowledge=knowledge,
                report_context=report_context,
                assessment=assessment,
                emergency_number=self.settings.emergency_number,
            ),
            history=history,
            user_message=question,
        )
        if outcome.ok and outcome.text:
            response_text = with_disclaimer(outcome.text, self.settings.emergency_number)
        else:
            logger.info("using fallback response for session %s (%s)", session_id, outcome.error)
            response_text = self.fallback.respond(question, history, knowledge)

        self.sessions.append_message(
            session_id,
            owner_id,
            role="assistant",
            content=response_text,
            message_kind="text",
        )
        return {
            "session_id": session_id,
            "response_text": response_text,
            "message_kind": "text",
            "is_emergency": False,
            "context_found": bool(knowledge) or bool(report_context),
            "severity": assessment.level,
        }

    def upload_report(
        self,
        session_id: str,
        owner_id: str,
        *,
        file_name: str,
        mime_type: str,
        content: bytes,
    ) -> dict[str, Any]:
        validate_upload(file_name, mime_type, len(content), max_bytes=self.settings.max_upload_bytes)
        self.sessions.require_active(session_id, owner_id)

        stored_path = store_upload(self.upload_dir, file_name, content)
        report = self.sessions.attach_report(
            session_id,
            owner_id,
            original_name=file_name,
            stored_path=str(stored_path),
            file_size=len(content),
            mime_type=mime_type,
        )
        report_id = report["report_id"]
        self.sessions.update_report_status(session_id, owner_id, report_id, "processing")
        try:
            result = self.cascade.extract(stored_path, file_name=file_name, mime_type=mime_type)
        except UploadIOError:
            self.sessions.update_report_status(session_id, owner_id, report_id, "failed")
            stored_path.unlink(missing_ok=True)
            raise
        self.sessions.update_report_status(
            session_id,
            owner_id,
            report_id,
            "completed",
            extracted_text=result.text,
            extraction_method=result.method,
            is_placeholder=result.is_placeholder,
        )

        analysis_text = self._analyze_report(file_name, len(content), result.text, result.is_placeholder)
        size_kb = round(len(content) / 1024)
        self.sessions.append_message(
            session_id,
            owner_id,
            role="system",
            content=f"📄 Medical report uploaded: {file_name} ({size_kb}KB)",
            message_kind="file_analysis",
        )
        self.sessions.append_message(
            session_id,
            owner_id,
            role="assistant",
            content=analysis_text,
            message_kind="file_analysis",
        )
        return {
            "session_id": session_id,
            "report_id": report_id,
            "file_name": file_name,
            "file_size": len(content),
            "analysis_text": analysis_text,
            "extracted_text_length": 0 if result.is_placeholder else len(result.text),
            "is_placeholder": result.is_placeholder,
            "extraction_method": result.method,
        }

    def _analyze_report(self, file_name: str, file_size: int, extracted_text: str, is_placeholder: bool) -> str:
        if is_placeholder:
            return self.fallback.report_analysis(file_name, file_size, is_placeholder=True)
        prompt = (
            "Please analyze this medical report and provide insights.\n\n"
            f"DOCUMENT: {file_name}\n"
            f"FILE SIZE: {round(file_size / 1024)}KB\n\n"
            f"EXTRACTED CONTENT:\n{extracted_text[:6000]}\n\n"
            "Please provide:\n"
            "1. A summary of the key findings\n"
            "2. Explanation of any abnormal values (if present)\n"
            "3. General health insights\n"
            "4. Recommendations for follow-up with a healthcare professional"
        )
        outcome = self.responder.generate(
            system_prompt=build_system_prompt(emergency_number=self.settings.emergency_number),
            history=[],
            user_message=prompt,
        )
        if outcome.ok and outcome.text:
            return with_disclaimer(outcome.text, self.settings.emergency_number)
        logger.info("using fallback report analysis for %s (%s)", file_name, outcome.error)
        return self.fallback.report_analysis(file_name, file_size, is_placeholder=False)

    def get_history(self, session_id: str, owner_id: str) -> dict[str, Any]:
        return self.sessions.history(session_id, owner_id)

    def list_sessions(
        self,
        owner_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        active: bool | None = None,
    ) -> dict[str, Any]:
        return self.sessions.list_sessions(owner_id, page=page, limit=limit, active=active)

    def end_session(self, session_id: str, owner_id: str) -> dict[str, Any]:
        return self.sessions.end(session_id, owner_id)

    def delete_session(self, session_id: str, owner_id: str) -> dict[str, Any]:
        return self.sessions.delete(session_id, owner_id)

    def quick_symptom_check(self, owner_id: str, symptoms: str) -> dict[str, Any]:
        description = (symptoms or "").strip()
        if not description:
            raise ValueError("Symptoms description is required.")
        assessment = self.classifier.assess(description)
        knowledge = self.knowledge.query(description, self.settings.retrieval_limit)
        logger.info("symptom check for %s classified %s", owner_id, assessment.level)

        if assessment.is_emergency:
            text = with_disclaimer(
                emergency_alert(assessment, self.settings.emergency_number),
                self.settings.emergency_number,
            )
            recommendations = [
                "Seek immediate emergency care",
                f"Call {self.settings.emergency_number}",
                "Go to the nearest hospital",
            ]
        else:
            outcome = self.responder.generate(
                system_prompt=build_system_prompt(
                    knowledge=knowledge,
                    assessment=assessment,
                    emergency_number=self.settings.emergency_number,
                ),
                history=[],
                user_message=f"Quick symptom check: {description}",
            )
            if outcome.ok and outcome.text:
                text = with_disclaimer(outcome.text, self.settings.emergency_number)
            else:
                text = self.fallback.respond(description, [], knowledge)
            recommendations = [
                "Consult with a healthcare provider",
                "Monitor symptoms",
                "Consider booking an appointment",
            ]

        return {
            "assessment": text,
            "severity": assessment.level,
            "is_emergency": assessment.is_emergency,
            "relevant_conditions": [self._condition_summary(hit) for hit in knowledge],
            "recommendations": recommendations,
        }

    def _condition_summary(self, hit: RetrievalResult) -> dict[str, Any]:
        advice = self.knowledge.condition_advice(hit.topic) or {}
        return {
            "topic": hit.topic,
            "similarity": round(hit.similarity, 4),
            "severity": hit.severity,
            "treatment": advice.get("treatment", ""),
            "emergency_signs": advice.get("emergency_signs", []),
        }
