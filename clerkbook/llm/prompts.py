"""Prompt templates for item enrichment."""

from clerkbook.llm.models import MAX_BULLETS, MAX_QUOTES, MAX_TAGS, EnrichMode


# Longest source text sent to the model.
MAX_PROMPT_TEXT_CHARS = 120_000

SYSTEM_INSTRUCTION_FULL = (
    "You are a research assistant. Given the full text of a source (article, "
    "document, or paste), produce:\n"
    "1. abstract: a 2-3 sentence abstract.\n"
    f"2. bullets: 8-{MAX_BULLETS} key points, one short sentence each.\n"
    f"3. quotes: 5-{MAX_QUOTES} key quotes, each with a short \"why\" explaining "
    "why it matters. Only use exact quotes from the text; do not fabricate.\n"
    f"4. tags: 8-{MAX_TAGS} reusable topic labels (lowercase, short).\n"
    "5. title: a concise title if the text has no clear title; otherwise omit.\n\n"
    "Respond with valid JSON only, no markdown fences or extra text: "
    '{"abstract": "...", "bullets": ["..."], '
    '"quotes": [{"quote": "...", "why": "..."}], '
    '"tags": ["..."], "title": "..."}'
)

SYSTEM_INSTRUCTION_TAGS_ONLY = (
    "You are a research assistant. The source text below is short. Produce:\n"
    "1. abstract: one sentence describing what the text is about.\n"
    f"2. tags: 3-{MAX_TAGS} reusable topic labels (lowercase, short).\n"
    "3. title: a concise title if the text has no clear title; otherwise omit.\n\n"
    "Respond with valid JSON only, no markdown fences or extra text: "
    '{"abstract": "...", "tags": ["..."], "title": "..."}'
)

_STYLE_HINTS = {
    "concise": "Keep the abstract and bullets as short as possible.",
    "detailed": "Prefer complete, specific bullets over brevity.",
    "academic": "Write in a neutral academic register.",
    "plain": "Write for a general reader and avoid jargon.",
}


def system_instruction_for(mode: EnrichMode) -> str:
    """Get the system instruction for an enrichment mode."""
    if mode == EnrichMode.TAGS_ONLY:
        return SYSTEM_INSTRUCTION_TAGS_ONLY
    return SYSTEM_INSTRUCTION_FULL


def build_enrich_prompt(text: str, mode: EnrichMode, style: str | None = None) -> str:
    """Build the user prompt for an enrichment call.

    Args:
        text: Cleaned source text (truncated to ``MAX_PROMPT_TEXT_CHARS``).
        mode: Enrichment mode.
        style: Optional style name; unknown names are passed through verbatim.

    Returns:
        Prompt text.
    """
    parts: list[str] = []
    if style:
        hint = _STYLE_HINTS.get(style.lower(), f"Write in this style: {style}.")
        parts.append(hint)
    if mode == EnrichMode.TAGS_ONLY:
        task = "tags and abstract"
    else:
        task = "abstract, bullets, quotes, tags, and optional title"
    parts.append(f"Extract {task} from this text:\n\n{text[:MAX_PROMPT_TEXT_CHARS]}")
    return "\n\n".join(parts)
