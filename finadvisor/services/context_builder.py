"""
Context Builder - system prompts for chat and insight generation.

The financial aggregation that produces the context text lives outside this
service; callers pass it in as an opaque blob and this module only frames it
with a language-specific instruction.
"""

from typing import Dict, Optional

from finadvisor.cache.models import InsightKind

DEFAULT_LANGUAGE = "tr"
SUPPORTED_LANGUAGES = ("tr", "en", "de")


# =============================================================================
# PROMPT TEMPLATES
# =============================================================================

CHAT_PROMPTS: Dict[str, str] = {
    "tr": (
        "Sen bir kişisel finans danışmanısın. Kullanıcının finansal verilerine "
        "erişimin var ve ona yardımcı oluyorsun. Kısa, net ve somut öneriler ver. "
        "Türkçe yanıt ver. Para birimi olarak ₺ kullan."
    ),
    "en": (
        "You are a personal finance advisor with access to the user's financial "
        "data. Be concise and actionable. Respond in English."
    ),
    "de": (
        "Du bist ein persönlicher Finanzberater mit Zugang zu den Finanzdaten des "
        "Nutzers. Antworte auf Deutsch, kurz und präzise. Verwende € als Währung."
    ),
}

INSIGHT_PROMPTS: Dict[str, Dict[str, str]] = {
    InsightKind.INSIGHT.value: {
        "tr": (
            "Sen bir kişisel finans danışmanısın. Kullanıcının finansal durumunu analiz et: "
            "genel değerlendirme, kategori analizi, dikkat edilmesi gerekenler ve 2-3 somut "
            "tasarruf önerisi. Türkçe yanıt ver."
        ),
        "en": (
            "You are a personal finance advisor. Analyze the user's financial situation: "
            "overall assessment, category analysis, attention needed and 2-3 concrete "
            "savings tips. Respond in English."
        ),
        "de": (
            "Du bist ein persönlicher Finanzberater. Analysiere die finanzielle Situation "
            "des Nutzers: Bewertung, Kategorieanalyse, Hinweise und 2-3 konkrete Spartipps. "
            "Antworte auf Deutsch."
        ),
    },
    InsightKind.GOAL_SUGGESTION.value: {
        "tr": (
            "Kullanıcının finansal durumuna göre 3 gerçekçi tasarruf hedefi öner. Yalnızca "
            'JSON dizisi döndür: [{"name": "...", "target_amount": 0, "months": 0, "reason": "..."}]'
        ),
        "en": (
            "Suggest 3 realistic savings goals for the user's financial situation. Return "
            'only a JSON array: [{"name": "...", "target_amount": 0, "months": 0, "reason": "..."}]'
        ),
        "de": (
            "Schlage 3 realistische Sparziele für die finanzielle Situation vor. Gib nur ein "
            'JSON-Array zurück: [{"name": "...", "target_amount": 0, "months": 0, "reason": "..."}]'
        ),
    },
    InsightKind.BUDGET_SUGGESTION.value: {
        "tr": (
            "Kullanıcının son 3 aylık harcamalarına göre en fazla 5 kategori için aylık bütçe "
            "limiti öner. Yalnızca JSON dizisi döndür: "
            '[{"category": "...", "monthly_limit": 0, "alert_threshold": 80, "reason": "..."}]'
        ),
        "en": (
            "Suggest monthly budget limits for at most 5 categories based on the last 3 "
            "months of spending. Return only a JSON array: "
            '[{"category": "...", "monthly_limit": 0, "alert_threshold": 80, "reason": "..."}]'
        ),
        "de": (
            "Schlage monatliche Budgetgrenzen für höchstens 5 Kategorien anhand der letzten "
            "3 Monate vor. Gib nur ein JSON-Array zurück: "
            '[{"category": "...", "monthly_limit": 0, "alert_threshold": 80, "reason": "..."}]'
        ),
    },
}


def normalize_language(language: Optional[str]) -> str:
    """Fall back to the default language for unknown codes."""
    if language and language.lower() in SUPPORTED_LANGUAGES:
        return language.lower()
    return DEFAULT_LANGUAGE


class ContextBuilder:
    """Frames caller-provided financial context into prompts."""

    def chat_system_prompt(self, context: Optional[str], language: str) -> str:
        prompt = CHAT_PROMPTS[normalize_language(language)]
        if context:
            prompt = f"{prompt}\n\n{context.strip()}"
        return prompt

    def insight_system_prompt(self, kind: str, language: str) -> str:
        return INSIGHT_PROMPTS[kind][normalize_language(language)]

    def insight_user_prompt(self, context: Optional[str]) -> str:
        if not context:
            return "No financial data is available for this user yet."
        return f"Here's the user's financial situation:\n\n{context.strip()}"


# =============================================================================
# SINGLETON
# =============================================================================

_context_builder: Optional[ContextBuilder] = None


def get_context_builder() -> ContextBuilder:
    """Get or create ContextBuilder singleton."""
    global _context_builder
    if _context_builder is None:
        _context_builder = ContextBuilder()
    return _context_builder
