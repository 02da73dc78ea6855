"""
AI prompt templates.

Each prompt is a function that takes context and returns a formatted string.
This keeps prompts testable and versionable.
"""

LANGUAGE_NAMES = {
    "it": "Italian",
    "de": "German",
    "en": "English",
}

ANALYSIS_CONTENT_MAX_CHARS = 2000


# ============================================================
# Link Analysis
# ============================================================

def analysis_prompt(url: str, title: str, content: str, locale: str = "en") -> str:
    """Ask for a cleaned title, a short description and a few tags as raw JSON."""
    language = LANGUAGE_NAMES.get(locale, "English")
    content_preview = (content or "")[:ANALYSIS_CONTENT_MAX_CHARS] or "(no content extracted)"

    return f"""Analyze this web content and return a JSON object with:
- "title": an improved, clean title (max 80 characters)
- "description": a short description of the content (max 150 characters, in {language})
- "tags": an array of 3-5 relevant tags (single words, no #, in {language}, lowercase)

URL: {url}
Original title: {title}
Content: {content_preview}

Reply ONLY with the JSON, no markdown or anything else."""


# ============================================================
# Domain Suggestions
# ============================================================

def domain_suggestion_prompt(domain: str) -> str:
    """Typo/incompleteness correction for a domain that could not be fetched."""
    return f"""The user tried to visit the domain "{domain}" but it does not exist or is misspelled.

Suggest 3-5 REAL and POPULAR domains the user might have meant. Consider:
- Common typos (e.g. "gogle" -> "google")
- Incomplete names (e.g. "git" -> "github", "gitlab")
- Similar domains in the same field

Reply ONLY with a JSON array of strings, no markdown. Example: ["github.com", "gitlab.com"]

If you cannot find sensible suggestions, reply with an empty array: []"""
