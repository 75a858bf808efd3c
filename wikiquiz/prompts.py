"""Prompt templates for quiz question generation.

One system prompt per language plus an English fallback. The system prompt
carries the output format and the quality rules that the validator later
enforces; the user prompt carries the article slice.
"""

from typing import Dict

DEFAULT_LANGUAGE = "cs"

OUTPUT_FORMAT = """{
  "question": "...",
  "answers": ["A", "B", "C"],
  "correctIndex": 0
}"""

SYSTEM_PROMPTS: Dict[str, str] = {
    "cs": """Vytvoř přesně 1 kvízovou otázku na základě textu článku.

Vrať pouze JSON v tomto tvaru:
{output_format}

Požadavky:
- Přesně 3 odpovědi, právě jedna je správná; correctIndex je její pozice (0-2).
- Používej pouze fakta z textu.
- Otázka nesmí obsahovat správnou odpověď.
- Správná odpověď nesmí být stejná ani podobná názvu článku („{title}“).
- Nepoužívej odkazy na článek („v tomto článku“, „podle textu“, „text uvádí“).
- Špatné odpovědi musí být stejného typu jako správná (osoba, místo, rok).
- Číselné odpovědi se musí výrazně lišit.
- Preferuj příčiny, role, důsledky a souvislosti.
- Jazyk: {lang}.
- Bez markdownu.""",
    "en": """Generate exactly 1 quiz question based on the article text.

Return JSON only, in this shape:
{output_format}

Rules:
- Exactly 3 answers, exactly one correct; correctIndex is its position (0-2).
- Use only facts stated in the text.
- The question must NOT contain the correct answer.
- The correct answer must not equal or resemble the article title ("{title}").
- Never refer to the article itself ("in this article", "the text states").
- Wrong answers must be of the same kind as the correct one (person, place, year).
- Incorrect numeric answers must differ significantly.
- Prefer causes, roles, consequences and relationships.
- Language: {lang}.
- No markdown.""",
}

USER_PROMPTS: Dict[str, str] = {
    "cs": 'Zde je text článku:\n"""{context}"""\nVrať pouze JSON.',
    "en": 'ARTICLE TEXT:\n"""{context}"""\nReturn JSON only.',
}


def build_system_prompt(lang: str, title: str) -> str:
    """
    Build the instruction prompt for one question.

    Languages without their own template use the English one with the
    requested language named in the rules.

    Args:
        lang: Target language code
        title: Article title (may be empty)

    Returns:
        Formatted system prompt
    """
    template = SYSTEM_PROMPTS.get(lang, SYSTEM_PROMPTS["en"])
    return template.format(
        output_format=OUTPUT_FORMAT,
        title=title.strip() or "-",
        lang=lang,
    )


def build_user_prompt(context: str, lang: str) -> str:
    """Wrap the article slice for the model."""
    template = USER_PROMPTS.get(lang, USER_PROMPTS["en"])
    return template.format(context=context)


BATCH_OUTPUT_FORMAT = """{
  "questions": [
    {"question": "...", "answers": ["A", "B", "C"], "correctIndex": 0}
  ]
}"""

BATCH_SYSTEM_PROMPTS: Dict[str, str] = {
    "cs": """Vytvoř přesně {count} různých kvízových otázek na základě textu článku.

Vrať pouze JSON v tomto tvaru (pole "questions" má {count} položek):
{output_format}

Požadavky:
- Každá otázka pokrývá jiný aspekt tématu; neopakuj stejnou entitu.
- Každá otázka má přesně 3 odpovědi, právě jedna je správná; correctIndex je její pozice (0-2).
- Používej pouze fakta z textu.
- Otázka nesmí obsahovat správnou odpověď.
- Správná odpověď nesmí být stejná ani podobná názvu článku („{title}“).
- Nepoužívej odkazy na článek („v tomto článku“, „podle textu“, „text uvádí“).
- Špatné odpovědi musí být stejného typu jako správná (osoba, místo, rok).
- Vyhni se otázkám, kde se odpovědi liší jen o malá čísla.
- Jazyk: {lang}.
- Bez markdownu.""",
    "en": """Generate exactly {count} different quiz questions based on the article text.

Return JSON only, in this shape (the "questions" array has {count} items):
{output_format}

Rules:
- Every question covers a different aspect of the topic; do not repeat an entity.
- Each question has exactly 3 answers, exactly one correct; correctIndex is its position (0-2).
- Use only facts stated in the text.
- A question must NOT contain its correct answer.
- The correct answer must not equal or resemble the article title ("{title}").
- Never refer to the article itself ("in this article", "the text states").
- Wrong answers must be of the same kind as the correct one (person, place, year).
- Avoid answer sets that differ only by small numbers.
- Language: {lang}.
- No markdown.""",
}


def build_batch_system_prompt(lang: str, title: str, count: int) -> str:
    """
    Build the instruction prompt for a set of questions in one call.

    Args:
        lang: Target language code
        title: Article title (may be empty)
        count: Number of questions to ask for

    Returns:
        Formatted system prompt
    """
    template = BATCH_SYSTEM_PROMPTS.get(lang, BATCH_SYSTEM_PROMPTS["en"])
    return template.format(
        output_format=BATCH_OUTPUT_FORMAT,
        title=title.strip() or "-",
        lang=lang,
        count=count,
    )
