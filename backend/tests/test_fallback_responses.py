from __future__ import annotations

from medassist_core import FallbackResponder, RetrievalResult, medical_disclaimer, with_disclaimer
from medassist_core.fallback import DISCLAIMER_HEADING, symptom_family


def _disclaimer_count(text: str) -> int:
    return text.count(DISCLAIMER_HEADING)


def test_disclaimer_is_appended_exactly_once():
    once = with_disclaimer("Drink plenty of fluids.")
    twice = with_disclaimer(once)
    assert once == twice
    assert _disclaimer_count(twice) == 1
    assert twice.endswith(medical_disclaimer())


def test_disclaimer_replaces_a_model_written_one():
    text = "Rest well.\n\n" + medical_disclaimer() + "\nExtra trailing words."
    result = with_disclaimer(text)
    assert _disclaimer_count(result) == 1
    assert result.startswith("Rest well.")
    assert result.endswith(medical_disclaimer())


def test_disclaimer_uses_configured_emergency_number():
    assert "call 112" in with_disclaimer("x", emergency_number="112")


def test_fever_family_template():
    responder = FallbackResponder()
    response = responder.respond("I have had a fever since yesterday")
    assert "Regarding fever" in response
    assert "103°F" in response
    assert _disclaimer_count(response) == 1


def test_chest_pain_template_names_emergency_number():
    response = FallbackResponder(emergency_number="911").respond("sharp heart pain on the left")
    assert "Call emergency services (911)" in response


def test_symptom_family_detection():
    assert symptom_family("my stomach hurts") == "abdominal"
    assert symptom_family("I feel dizzy when standing") == "dizziness"
    assert symptom_family("itchy rash on my arm") == "rash"
    assert symptom_family("sore throat and cough") == "cough_cold"
    assert symptom_family("question about my insurance") is None


def test_continuity_template_when_earlier_turns_mentioned_symptoms():
    history = [
        {"role": "assistant", "content": "Hello! How can I help?"},
        {"role": "user", "content": "I've been feeling sick for two days"},
        {"role": "assistant", "content": "Sorry to hear that."},
    ]
    response = FallbackResponder().respond("What should I do next?", history)
    assert "discussing your symptoms" in response


def test_latest_message_family_takes_precedence_over_continuity():
    history = [{"role": "user", "content": "I've been feeling sick"}]
    response = FallbackResponder().respond("Now I also have a headache", history)
    assert "Regarding headaches" in response


def test_generic_template_quotes_start_of_question():
    question = "Can you explain how often I should get a general checkup at my age please?"
    response = FallbackResponder().respond(question)
    assert f'"{question[:50]}..."' in response
    assert "primary care physician" in response
    assert "pharmacist" in response
    assert "(999)" in response


def test_retrieved_topics_are_listed_as_related_information():
    hit = RetrievalResult(topic="Cough", content="Cough is a common symptom.", symptoms=[], severity="mild", similarity=0.8)
    response = FallbackResponder().respond("dry cough at night", knowledge=[hit])
    assert "**Related information:**" in response
    assert "**Cough**: Cough is a common symptom." in response
    assert response.endswith(medical_disclaimer())


def test_report_analysis_fallbacks():
    responder = FallbackResponder()
    guidance = responder.report_analysis("cbc.pdf", 2048, is_placeholder=False)
    assert "Medical Report Analysis" in guidance
    assert '"cbc.pdf" (2KB)' in guidance
    placeholder = responder.report_analysis("scan.pdf", 4096, is_placeholder=True)
    assert "couldn't read the contents" in placeholder
    assert _disclaimer_count(placeholder) == 1


def test_symptom_keywords_do_not_match_inside_other_words():
    assert symptom_family("How much fluid should I drink a day?") is None
    assert symptom_family("I get heartburn after dinner") is None
    assert symptom_family("my nose is itchy") == "rash"
    assert symptom_family("I think I have the flu") == "cough_cold"
    assert "Regarding cough" not in FallbackResponder().respond("How much fluid should I drink a day?")


def test_text_after_a_model_written_disclaimer_is_kept():
    text = "Rest well.\n\n" + medical_disclaimer() + "\n\nCheck your temperature again tonight."
    result = with_disclaimer(text)
    assert _disclaimer_count(result) == 1
    assert "Check your temperature again tonight." in result
    assert result.endswith(medical_disclaimer())


def test_trailing_dashes_in_the_body_survive():
    result = with_disclaimer("Missing values are shown as --")
    assert result.startswith("Missing values are shown as --\n\n---\n")
