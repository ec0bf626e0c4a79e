from __future__ import annotations

import re
from typing import Any, Sequence

from .models import SEVERITY_EMERGENCY, SEVERITY_URGENT, RetrievalResult, SeverityAssessment

DISCLAIMER_HEADING = "⚠️ **Medical Disclaimer**"


def medical_disclaimer(emergency_number: str = "999") -> str:
    return (
        f"{DISCLAIMER_HEADING}: This information is for educational purposes only and should not replace "
        "professional medical advice. Please consult with a qualified healthcare provider for proper diagnosis "
        f"and treatment. In case of emergency, call {emergency_number} or visit your nearest emergency department."
    )


# The disclaimer paragraph runs to the next blank line, with an optional "---" rule above it.
_DISCLAIMER_BLOCK = re.compile(
    r"(?:^[ \t]*-{3,}\s*?\n)?[ \t]*" + re.escape(DISCLAIMER_HEADING) + r".*?(?=\n[ \t]*\n|\Z)",
    re.DOTALL | re.MULTILINE,
)


def strip_disclaimer(text: str) -> str:
    body = _DISCLAIMER_BLOCK.sub("", text or "")
    return re.sub(r"\n{3,}", "\n\n", body).strip()


def with_disclaimer(text: str, emergency_number: str = "999") -> str:
    """Return ``text`` ending with exactly one medical disclaimer."""
    body = strip_disclaimer(text)
    disclaimer = medical_disclaimer(emergency_number)
    if not body:
        return disclaimer
    return f"{body}\n\n---\n{disclaimer}"


def severity_guidance(assessment: SeverityAssessment, emergency_number: str = "999") -> str:
    if assessment.level == SEVERITY_EMERGENCY:
        return (
            "EMERGENCY_LEVEL: HIGH\n"
            "🚨 CRITICAL: These symptoms may indicate a medical emergency.\n\n"
            "IMMEDIATE ACTIONS:\n"
            f"- Call emergency services ({emergency_number}) NOW\n"
            "- Go to the nearest emergency department immediately\n"
            "- If possible, have someone accompany you\n"
            "- Do not drive yourself"
        )
    if assessment.level == SEVERITY_URGENT:
        return (
            "EMERGENCY_LEVEL: MEDIUM\n"
            "⚠️ URGENT: These symptoms require prompt medical attention.\n\n"
            "RECOMMENDED ACTIONS:\n"
            "- Contact your healthcare provider immediately\n"
            "- Consider visiting urgent care or an emergency department\n"
            "- Monitor symptoms closely\n"
            "- Seek emergency care if symptoms worsen\n\n"
            f"If symptoms become severe, call {emergency_number}."
        )
    return (
        "EMERGENCY_LEVEL: LOW\n"
        "ℹ️ ROUTINE: These symptoms should be evaluated by a healthcare provider.\n\n"
        "RECOMMENDED ACTIONS:\n"
        "- Schedule an appointment with your doctor\n"
        "- Monitor symptoms\n"
        "- Follow general health guidelines\n"
        "- Seek urgent care if symptoms worsen significantly\n\n"
        "Contact emergency services if you develop severe symptoms."
    )


def emergency_alert(assessment: SeverityAssessment, emergency_number: str = "999") -> str:
    return (
        "🚨 **URGENT MEDICAL ATTENTION NEEDED** 🚨\n\n"
        "Based on your symptoms, this could be a medical emergency. Please:\n\n"
        f"1. Call emergency services immediately ({emergency_number})\n"
        "2. Go to the nearest emergency department\n"
        "3. If possible, have someone accompany you\n\n"
        "Do not wait - seek immediate medical attention.\n\n"
        f"{severity_guidance(assessment, emergency_number)}"
    )


_FEVER = """Regarding fever: Fever is your body's natural response to infection. For adults, a fever is generally considered 100.4°F (38°C) or higher.

Treatment suggestions:
- Rest and stay hydrated
- Take paracetamol or ibuprofen as directed
- Use light clothing and maintain a comfortable room temperature
- Monitor your temperature regularly

Seek immediate medical attention if:
- Fever exceeds 103°F (39.4°C)
- It comes with severe headache, stiff neck, or difficulty breathing
- Fever persists for more than 3 days

For infants under 3 months, any fever requires immediate medical attention."""

_HEADACHE = """Regarding headaches: Most headaches are tension-type and not dangerous, but some require medical attention.

Common causes:
- Stress, dehydration, lack of sleep
- Eye strain from screens
- Muscle tension in the neck or shoulders
- Certain foods or medications

Treatment options:
- Rest in a quiet, dark room
- Apply a cold or warm compress
- Stay hydrated
- Gentle neck and shoulder stretches
- Over-the-counter pain relievers as needed

Seek immediate care if the headache is:
- Sudden and severe ("worst headache of your life")
- Accompanied by fever, stiff neck, or confusion
- Following a head injury
- Accompanied by vision changes or weakness"""

_CHEST_PAIN = """⚠️ IMPORTANT: Chest pain can be serious.

If you're experiencing:
- Crushing, squeezing chest pain
- Pain radiating to the arm, jaw, or back
- Shortness of breath
- Sweating, nausea, dizziness

Call emergency services ({number}) immediately or go to the nearest emergency room.

For mild chest discomfort that may be non-cardiac:
- It could be muscle strain, acid reflux, or anxiety
- It is still worth discussing with a healthcare provider
- Monitor symptoms and seek care if they worsen

Never ignore chest pain - when in doubt, seek immediate medical attention."""

_COUGH = """Regarding cough and cold symptoms: Most coughs and colds are caused by viral infections and settle within one to three weeks.

Self-care suggestions:
- Drink plenty of warm fluids
- Rest and use a humidifier or steam inhalation
- Honey and throat lozenges can ease irritation (no honey for children under 1 year)
- Avoid smoke and other irritants

See a healthcare provider if:
- The cough lasts longer than 3 weeks
- You are coughing up blood or green/yellow phlegm with fever
- You are short of breath or wheezing"""

_ABDOMINAL = """Regarding abdominal pain: Stomach pain is common and often caused by indigestion, gas, constipation, or a mild infection.

Things that may help:
- Eat small, bland meals and avoid fatty or spicy food
- Sip water or oral rehydration solution, especially after vomiting or diarrhoea
- Rest and use a warm compress on the abdomen

Seek urgent care if:
- The pain is sudden, severe, or localised to the lower right side
- You are vomiting blood or passing black stools
- Your abdomen is rigid or the pain comes with high fever"""

_DIZZINESS = """Regarding dizziness: Light-headedness is often linked to dehydration, standing up quickly, low blood sugar, or inner-ear problems.

Things that may help:
- Sit or lie down until it passes
- Drink water and eat something if you haven't recently
- Stand up slowly from sitting or lying

Seek immediate care if dizziness comes with:
- Fainting, chest pain, or palpitations
- Slurred speech, facial drooping, or weakness on one side
- A severe headache or vision loss"""

_RASH = """Regarding skin rashes: Most rashes are caused by irritation, allergies, eczema, or mild infections.

Self-care suggestions:
- Keep the area clean and dry and avoid scratching
- Use a fragrance-free moisturiser
- Avoid any new soaps, creams, or foods that may have triggered it
- An antihistamine may help with itching

Seek medical care if:
- The rash spreads quickly or covers a large area
- It comes with fever, swelling of the face or lips, or difficulty breathing
- It is painful, blistering, or shows signs of infection"""

# Keywords match whole words or phrases only.
SYMPTOM_FAMILIES: tuple[tuple[str, tuple[str, ...], str], ...] = (
    ("chest_pain", ("chest pain", "heart", "chest tightness"), _CHEST_PAIN),
    ("fever", ("fever", "feverish", "temperature"), _FEVER),
    ("headache", ("headache", "headaches", "head pain", "migraine", "migraines"), _HEADACHE),
    ("cough_cold", ("cough", "coughing", "cold", "sore throat", "runny nose", "flu"), _COUGH),
    (
        "abdominal",
        ("stomach", "abdominal", "belly", "nausea", "nauseous", "diarrhea", "diarrhoea", "vomit", "vomiting", "vomited"),
        _ABDOMINAL,
    ),
    ("dizziness", ("dizzy", "dizziness", "lightheaded", "light-headed", "vertigo"), _DIZZINESS),
    ("rash", ("rash", "itch", "itchy", "itching", "hives", "skin"), _RASH),
)

_FAMILY_PATTERNS = tuple(
    (name, re.compile(r"\b(?:" + "|".join(re.escape(keyword) for keyword in keywords) + r")\b"), template)
    for name, keywords, template in SYMPTOM_FAMILIES
)

_HISTORY_SYMPTOM_WORDS = ("fever", "headache", "pain", "sick", "cough", "dizzy", "rash", "vomit", "nausea")

_CONTINUITY = """I understand you've been discussing your symptoms with me. While I'm having trouble generating a detailed response right now, I can still offer guidance based on our conversation.

**Continuing Care Recommendations:**
- Keep monitoring your symptoms as we discussed
- Note any changes in severity or new symptoms
- Follow any treatment suggestions we covered earlier
- Stay hydrated and get adequate rest

**When to Seek Immediate Care:**
- If symptoms worsen significantly
- If you develop new concerning symptoms
- For any emergency symptoms (chest pain, difficulty breathing, severe headache), call {number}

**Follow-up Actions:**
- Consider scheduling an appointment with your healthcare provider
- Keep a symptom diary with times and severity
- Don't hesitate to seek emergency care if needed

Would you like me to focus on any specific aspect of your symptoms that we were discussing?"""

_GENERIC = """I can't provide a detailed AI-generated response right now. However, here's some general guidance.

Based on your question about "{excerpt}", I recommend:

1. **For urgent symptoms**: Contact emergency services ({number}) or visit your nearest hospital
2. **For general health concerns**: Schedule an appointment with your primary care physician
3. **For medication questions**: Consult your pharmacist or prescribing doctor
4. **For preventive care**: Maintain healthy lifestyle habits

This is general information only. Always consult qualified healthcare professionals for proper medical evaluation and treatment."""

_REPORT_GUIDANCE = """📋 **Medical Report Analysis**

📄 **Document Processing**: I've received your medical report "{name}" ({size_kb}KB).

🔍 **General Guidance for Medical Report Review**:

**What to Look For**:
1. **Normal vs. Abnormal Values**: Check if results are within reference ranges
2. **Trending Patterns**: Compare with previous reports if available
3. **Critical Values**: Look for any results marked as "high", "low" or "critical"
4. **Follow-up Recommendations**: Note any suggested additional tests

**Important Questions for Your Doctor**:
1. "What do these results mean for my health?"
2. "Are any values outside the normal range concerning?"
3. "What follow-up is needed based on these results?"
4. "Should I change any medications or lifestyle habits?"

**Red Flags to Discuss Immediately**:
- Any results marked as "critical" or "urgent"
- Significant changes from previous results
- Recommendations for immediate follow-up care

You can ask me about specific values from this report and I'll explain what they usually mean."""

_REPORT_PLACEHOLDER = """A medical report has been uploaded: {name} ({size_kb}KB).

I couldn't read the contents of this document automatically. Please share the key details from your report, such as:
- Test results and values
- Symptoms or concerns mentioned
- Doctor's notes or recommendations
- Any abnormal findings

Once you share these details, I can help explain your medical information."""


def _match_family(text: str) -> tuple[str, str] | None:
    lowered = (text or "").lower()
    for name, pattern, template in _FAMILY_PATTERNS:
        if pattern.search(lowered):
            return name, template
    return None


def symptom_family(text: str) -> str | None:
    match = _match_family(text)
    return match[0] if match else None


class FallbackResponder:
    """Templated replies used whenever the model call does not produce text."""

    def __init__(self, *, emergency_number: str = "999") -> None:
        self.emergency_number = emergency_number

    def respond(
        self,
        question: str,
        history: Sequence[dict[str, Any]] = (),
        knowledge: Sequence[RetrievalResult] = (),
    ) -> str:
        body = self._body(question, history)
        if knowledge:
            related = "\n".join(f"- **{hit.topic}**: {hit.content}" for hit in knowledge)
            body = f"{body}\n\n**Related information:**\n{related}"
        return with_disclaimer(body, self.emergency_number)

    def _body(self, question: str, history: Sequence[dict[str, Any]]) -> str:
        match = _match_family(question)
        if match:
            return match[1].format(number=self.emergency_number)

        earlier_user_turns = [
            str(turn.get("content") or "").lower()
            for turn in history
            if turn.get("role") == "user" and str(turn.get("content") or "").strip() != (question or "").strip()
        ]
        if any(word in content for content in earlier_user_turns for word in _HISTORY_SYMPTOM_WORDS):
            return _CONTINUITY.format(number=self.emergency_number)

        cleaned = (question or "").strip()
        excerpt = cleaned[:50] + ("..." if len(cleaned) > 50 else "")
        return _GENERIC.format(excerpt=excerpt, number=self.emergency_number)

    def report_analysis(self, original_name: str, file_size: int, *, is_placeholder: bool) -> str:
        template = _REPORT_PLACEHOLDER if is_placeholder else _REPORT_GUIDANCE
        body = template.format(name=original_name, size_kb=round(file_size / 1024))
        return with_disclaimer(body, self.emergency_number)
