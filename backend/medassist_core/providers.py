from __future__ import annotations

import os
from typing import Any

import httpx

from .gateway import ProviderError, ProviderThrottled

OPENAI_API_BASE = os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1").rstrip("/")
OPENROUTER_API_BASE = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
ANTHROPIC_API_BASE = os.getenv("ANTHROPIC_API_BASE_URL", "https://api.anthropic.com/v1").rstrip("/")


def provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def _raise_for_provider_status(response: httpx.Response, provider_name: str) -> None:
    if response.status_code == 429:
        raise ProviderThrottled(f"{provider_name}: {provider_error_message(response)}")
    if response.status_code >= 400:
        raise ProviderError(f"{provider_name}: {provider_error_message(response)}")


def coerce_completion_text(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    message = choices[0].get("message", {})
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text_value = item.get("text")
                if isinstance(text_value, str):
                    parts.append(text_value)
        return "\n".join(parts)
    return ""


def coerce_anthropic_text(response_json: dict[str, Any]) -> str:
    content = response_json.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "text":
            continue
        text_value = item.get("text")
        if isinstance(text_value, str) and text_value.strip():
            parts.append(text_value.strip())
    return "\n".join(parts).strip()


def chat_provider_candidates() -> list[dict[str, Any]]:
    """Configured chat providers, the preferred one (``MEDASSIST_CHAT_PROVIDER``) first."""
    provider_preference = (os.getenv("MEDASSIST_CHAT_PROVIDER") or "auto").strip().lower()
    candidates: list[dict[str, Any]] = []

    anthropic_api_key = (os.getenv("ANTHROPIC_API_KEY") or "").strip()
    if anthropic_api_key:
        candidates.append(
            {
                "provider": "anthropic",
                "base_url": ANTHROPIC_API_BASE,
                "api_key": anthropic_api_key,
                "model": (os.getenv("ANTHROPIC_MODEL") or "claude-3-5-sonnet-latest").strip(),
            }
        )

    openrouter_api_key = (os.getenv("OPENROUTER_API_KEY") or "").strip()
    if openrouter_api_key:
        candidates.append(
            {
                "provider": "openrouter",
                "base_url": OPENROUTER_API_BASE,
                "api_key": openrouter_api_key,
                "model": (os.getenv("OPENROUTER_MODEL") or "openai/gpt-4o-mini").strip(),
            }
        )

    openai_api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if openai_api_key:
        candidates.append(
            {
                "provider": "openai",
                "base_url": OPENAI_API_BASE,
                "api_key": openai_api_key,
                "model": (os.getenv("MEDASSIST_CHAT_MODEL") or "gpt-4o-mini").strip(),
            }
        )

    if provider_preference in {"", "auto"}:
        return candidates

    aliases = {"claude": "anthropic", "anthropic": "anthropic", "openrouter": "openrouter", "openai": "openai"}
    canonical = aliases.get(provider_preference)
    if not canonical:
        return candidates
    preferred = [candidate for candidate in candidates if candidate["provider"] == canonical]
    others = [candidate for candidate in candidates if candidate["provider"] != canonical]
    return preferred + others


def openai_compatible_chat(
    *,
    provider: dict[str, Any],
    messages: list[dict[str, str]],
    timeout_seconds: float,
) -> str | None:
    payload = {
        "model": provider["model"],
        "temperature": 0.3,
        "max_tokens": 1000,
        "messages": messages,
    }
    headers: dict[str, str] = {
        "Authorization": f"Bearer {provider['api_key']}",
        "Content-Type": "application/json",
    }
    if provider["provider"] == "openrouter":
        app_name = (os.getenv("OPENROUTER_APP_NAME") or "MedAssist").strip()
        if app_name:
            headers["X-Title"] = app_name
    try:
        with httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=8.0)) as client:
            response = client.post(f"{provider['base_url']}/chat/completions", headers=headers, json=payload)
    except httpx.HTTPError as exc:
        raise ProviderError(f"{provider['provider']}: {exc}") from exc
    _raise_for_provider_status(response, provider["provider"])
    text = coerce_completion_text(response.json()).strip()
    return text or None


def anthropic_chat(
    *,
    provider: dict[str, Any],
    system_prompt: str,
    history: list[dict[str, str]],
    user_message: str,
    timeout_seconds: float,
) -> str | None:
    anthropic_messages: list[dict[str, str]] = []
    for turn in history:
        role = str(turn.get("role") or "").strip().lower()
        if role not in {"user", "assistant"}:
            continue
        content = str(turn.get("content") or "").strip()
        if not content:
            continue
        # The Messages API requires alternating roles; merge consecutive turns.
        if anthropic_messages and anthropic_messages[-1]["role"] == role:
            anthropic_messages[-1]["content"] += "\n\n" + content[:1200]
        else:
            anthropic_messages.append({"role": role, "content": content[:1200]})
    if anthropic_messages and anthropic_messages[0]["role"] != "user":
        anthropic_messages.pop(0)
    if anthropic_messages and anthropic_messages[-1]["role"] == "user":
        anthropic_messages[-1]["content"] += "\n\n" + user_message.strip()[:2000]
    else:
        anthropic_messages.append({"role": "user", "content": user_message.strip()[:2000]})

    payload = {
        "model": provider["model"],
        "max_tokens": 1000,
        "temperature": 0.3,
        "system": system_prompt,
        "messages": anthropic_messages,
    }
    headers = {
        "x-api-key": str(provider["api_key"]),
        "anthropic-version": os.getenv("ANTHROPIC_API_VERSION", "2023-06-01"),
        "Content-Type": "application/json",
    }
    try:
        with httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=8.0)) as client:
            response = client.post(f"{provider['base_url']}/messages", headers=headers, json=payload)
    except httpx.HTTPError as exc:
        raise ProviderError(f"anthropic: {exc}") from exc
    _raise_for_provider_status(response, "anthropic")
    text = coerce_anthropic_text(response.json())
    return text or None


def complete_chat(
    *,
    provider: dict[str, Any],
    system_prompt: str,
    history: list[dict[str, str]],
    user_message: str,
    timeout_seconds: float,
) -> str | None:
    """One completion from ``provider`` for ``user_message`` following ``history``."""
    if provider["provider"] == "anthropic":
        return anthropic_chat(
            provider=provider,
            system_prompt=system_prompt,
            history=history,
            user_message=user_message,
            timeout_seconds=timeout_seconds,
        )
    messages: list[dict[str, str]] = [
        {"role": "system", "content": system_prompt},
        *[
            {"role": turn["role"], "content": str(turn.get("content") or "").strip()[:1200]}
            for turn in history
            if turn.get("role") in {"user", "assistant"} and str(turn.get("content") or "").strip()
        ],
        {"role": "user", "content": user_message.strip()[:2000]},
    ]
    return openai_compatible_chat(provider=provider, messages=messages, timeout_seconds=timeout_seconds)
