"""
Translation providers - Google Translate v2 and chat-completion LLMs.

Every call returns the translated text plus a UsageEvent so the caller can
record cost per order file. LLM providers receive a domain-specific system
prompt; Google receives plain text and reports the detected source language.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from models import TranslationProvider, DocumentDomain, UsageEvent, UsageKind
from services.languages import get_language_name

logger = logging.getLogger(__name__)

GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

DEFAULT_PROVIDER = TranslationProvider.OPENROUTER
OPENROUTER_DEFAULT_MODEL = "openai/gpt-5.2"
OPENAI_DEFAULT_MODEL = os.getenv("OPENAI_TRANSLATION_MODEL", "gpt-4o")
ANTHROPIC_DEFAULT_MODEL = os.getenv("ANTHROPIC_TRANSLATION_MODEL", "claude-sonnet-4-5")

OPENROUTER_MODEL_PRESETS = [
    {"id": "anthropic/claude-opus-4.5", "label": "Anthropic: Claude Opus 4.5 (best quality)"},
    {"id": "openai/gpt-5.2", "label": "OpenAI: GPT-5.2 (latest)"},
    {"id": "anthropic/claude-sonnet-4.5", "label": "Anthropic: Claude Sonnet 4.5"},
    {"id": "anthropic/claude-3.5-haiku", "label": "Anthropic: Claude 3.5 Haiku (fast)"},
    {"id": "openai/gpt-4o", "label": "OpenAI: GPT-4o"},
    {"id": "openai/gpt-4.1", "label": "OpenAI: GPT-4.1"},
]

REQUEST_TIMEOUT_SECONDS = 180.0
LLM_TEMPERATURE = 0.2
ANTHROPIC_MAX_TOKENS = 8192


class TranslationProviderError(Exception):
    """Provider not configured or returned an error."""
    pass


@dataclass
class ProviderResult:
    text: str
    usage: UsageEvent
    detected_source_language: Optional[str] = None


# ============================================================================
# PROMPTS
# ============================================================================

FORMATTING_RULES = """
## FORMATTING RULES
1. Keep the source structure: headings, sections, numbering and paragraph breaks stay where they are.
2. Forms and certificates: one "Label: Value" field per line. Never merge separate fields with semicolons.
3. Tables and transcripts: keep rows and columns aligned; markdown tables stay markdown tables.
4. Lists keep their bullets, numbering and indentation.
5. Do not add notes, explanations or commentary.
6. Output only the translation.
"""

DOMAIN_PROMPTS = {
    DocumentDomain.CERTIFICATE: (
        "You are a certified translator of official documents: certificates, diplomas, transcripts, "
        "civil records, IDs and licences.\n"
        "Keep reference and registration numbers exactly as written. Render seals and stamps as "
        "\"[Official Seal]\" or \"[Stamp]\". Write dates as \"Month Day, Year\" and put each kind of date "
        "(birth, issue, expiry) on its own line. Do not translate personal names."
    ),
    DocumentDomain.LEGAL: (
        "You are a legal translator for contracts, court filings, powers of attorney, corporate and "
        "regulatory documents.\n"
        "Keep article, clause and section numbering exactly. Use the established legal term in the target "
        "language; if none exists, translate literally and keep the original in parentheses. Keep party "
        "names, defined terms and signature blocks intact."
    ),
    DocumentDomain.MEDICAL: (
        "You are a medical translator for clinical reports, prescriptions, discharge summaries and "
        "pharmaceutical documents.\n"
        "Use standard clinical terminology. Keep dosages, units, lab values and reference ranges exactly. "
        "Keep drug names in their international non-proprietary form."
    ),
    DocumentDomain.TECHNICAL: (
        "You are a technical translator for manuals, specifications and software documentation.\n"
        "Do not translate code, commands, file paths, identifiers, model or part numbers. Keep units and "
        "tolerances exactly. Use consistent terminology throughout."
    ),
    DocumentDomain.GENERAL: (
        "You are a professional document translator for letters, reports, articles, business and personal "
        "documents.\n"
        "Translate accurately in the register of the source. Adapt idioms naturally without changing meaning."
    ),
}


def get_domain_system_prompt(domain: DocumentDomain) -> str:
    return DOMAIN_PROMPTS.get(domain, DOMAIN_PROMPTS[DocumentDomain.GENERAL]) + "\n" + FORMATTING_RULES


def build_user_prompt(text: str, source_language: str, target_language: str) -> str:
    target = get_language_name(target_language)
    if source_language == "auto":
        header = f"Detect the source language and translate the following text into {target}."
    else:
        header = f"Translate the following text from {get_language_name(source_language)} into {target}."
    return f"{header}\n\n{text}"


# ============================================================================
# PROVIDERS
# ============================================================================

def _require_key(env_name: str) -> str:
    key = os.getenv(env_name)
    if not key:
        raise TranslationProviderError(f"{env_name} not configured")
    return key


async def translate_with_google(text: str, source_language: str, target_language: str) -> ProviderResult:
    api_key = _require_key("GOOGLE_CLOUD_API_KEY")
    body = {"q": text, "target": target_language, "format": "text"}
    if source_language and source_language != "auto":
        body["source"] = source_language

    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{GOOGLE_TRANSLATE_URL}?key={api_key}",
            json=body,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    if response.status_code != 200:
        logger.error(f"Google Translate error {response.status_code}: {response.text[:500]}")
        raise TranslationProviderError(f"Google Translate error: {response.status_code}")

    translations = (response.json().get("data") or {}).get("translations") or []
    if not translations:
        raise TranslationProviderError("Google Translate returned no translations")
    translated = translations[0].get("translatedText", "")
    return ProviderResult(
        text=translated,
        detected_source_language=translations[0].get("detectedSourceLanguage"),
        usage=UsageEvent(
            provider=TranslationProvider.GOOGLE,
            kind=UsageKind.TEXT,
            model="translate-v2",
            input_chars=len(text),
            output_chars=len(translated),
            requests=1,
        ),
    )


async def _chat_completion(
    url: str,
    api_key: str,
    provider: TranslationProvider,
    model: str,
    system_prompt: str,
    user_prompt: str,
) -> ProviderResult:
    """OpenAI-compatible chat completion (OpenAI and OpenRouter)."""
    payload = {
        "model": model,
        "temperature": LLM_TEMPERATURE,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
    }
    async with httpx.AsyncClient() as client:
        response = await client.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    if response.status_code != 200:
        logger.error(f"{provider.value} error {response.status_code}: {response.text[:500]}")
        raise TranslationProviderError(f"{provider.value} error: {response.status_code}")

    data = response.json()
    choices = data.get("choices") or []
    if not choices:
        raise TranslationProviderError(f"{provider.value} returned no choices")
    usage = data.get("usage") or {}
    return ProviderResult(
        text=(choices[0].get("message") or {}).get("content", "").strip(),
        usage=UsageEvent(
            provider=provider,
            kind=UsageKind.TEXT,
            model=data.get("model") or model,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
            requests=1,
        ),
    )


async def translate_with_anthropic(model: str, system_prompt: str, user_prompt: str) -> ProviderResult:
    api_key = _require_key("ANTHROPIC_API_KEY")
    payload = {
        "model": model,
        "max_tokens": ANTHROPIC_MAX_TOKENS,
        "temperature": LLM_TEMPERATURE,
        "system": system_prompt,
        "messages": [{"role": "user", "content": user_prompt}],
    }
    async with httpx.AsyncClient() as client:
        response = await client.post(
            ANTHROPIC_URL,
            json=payload,
            headers={"x-api-key": api_key, "anthropic-version": "2023-06-01"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    if response.status_code != 200:
        logger.error(f"anthropic error {response.status_code}: {response.text[:500]}")
        raise TranslationProviderError(f"anthropic error: {response.status_code}")

    data = response.json()
    text = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
    usage = data.get("usage") or {}
    input_tokens = usage.get("input_tokens") or 0
    output_tokens = usage.get("output_tokens") or 0
    return ProviderResult(
        text=text.strip(),
        usage=UsageEvent(
            provider=TranslationProvider.ANTHROPIC,
            kind=UsageKind.TEXT,
            model=data.get("model") or model,
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            requests=1,
        ),
    )


async def translate_text(
    text: str,
    source_language: str,
    target_language: str,
    provider: TranslationProvider = DEFAULT_PROVIDER,
    document_domain: DocumentDomain = DocumentDomain.GENERAL,
    open_router_model: Optional[str] = None,
) -> ProviderResult:
    """Translate one chunk with the chosen provider."""
    if provider == TranslationProvider.GOOGLE:
        return await translate_with_google(text, source_language, target_language)

    system_prompt = get_domain_system_prompt(document_domain)
    user_prompt = build_user_prompt(text, source_language, target_language)

    if provider == TranslationProvider.OPENAI:
        return await _chat_completion(
            OPENAI_URL, _require_key("OPENAI_API_KEY"), provider,
            OPENAI_DEFAULT_MODEL, system_prompt, user_prompt,
        )
    if provider == TranslationProvider.ANTHROPIC:
        return await translate_with_anthropic(ANTHROPIC_DEFAULT_MODEL, system_prompt, user_prompt)
    if provider == TranslationProvider.OPENROUTER:
        return await _chat_completion(
            OPENROUTER_URL, _require_key("OPENROUTER_API_KEY"), provider,
            open_router_model or OPENROUTER_DEFAULT_MODEL, system_prompt, user_prompt,
        )
    raise TranslationProviderError(f"Unknown provider: {provider}")
