import json
import logging
import re

import httpx

from memoir_prompts.settings.config import settings

logger = logging.getLogger(__name__)


class OllamaError(RuntimeError):
    pass

#----------output cleanup---------------

def _sanitize_llm_text(out: str) -> str:
    """Remove assistant-y prefaces and unwrap code fences/quotes."""
    if not out:
        return ""
    s = out.strip()
    # Prefer content inside triple backticks if present
    m = re.search(r"```(?:\w+)?\s*([\s\S]*?)```", s)
    if m and m.group(1).strip():
        s = m.group(1).strip()
    # Drop common preface lines like "Here you go:", "Questions:", etc.
    lines = [ln.rstrip() for ln in s.splitlines()]
    while lines:
        head = lines[0].strip()
        if not head:
            lines.pop(0)
            continue
        low = head.lower().rstrip(":")
        boiler = (
            "here you go" in low or
            "here is" in low or
            "here are" in low or
            "here's" in low or
            low.endswith("questions") or
            low.endswith("prompts")
        )
        if boiler and len(head) <= 120:
            lines.pop(0)
            continue
        break
    return "\n".join(lines).strip()


def _parse_candidates(raw: str) -> list[str]:
    """Accept a JSON list of strings or one question per line."""
    s = _sanitize_llm_text(raw)
    if not s:
        return []
    try:
        data = json.loads(s)
    except ValueError:
        data = None
    if isinstance(data, dict):
        data = data.get("prompts") or data.get("questions")
    if isinstance(data, list):
        items = [str(x) for x in data if isinstance(x, (str, int, float))]
    else:
        items = s.splitlines()
    out = []
    for item in items:
        t = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", item).strip()
        # unwrap matching surrounding quotes
        if len(t) >= 2 and t[0] == t[-1] and t[0] in "\"'":
            t = t[1:-1].strip()
        if t:
            out.append(t)
    return out

#------story prompt composition------------

async def compose_with_ollama(story, anchor, max_new: int = 3) -> list[str]:
    """
    Ask Ollama for follow-up questions about one anchor of a story.
    Returns candidate texts; the caller validates them.
    """
    system = (
        "You write short, warm follow-up questions that help someone record a memoir. "
        "Each question must name the given subject exactly as written, stay under 25 words, "
        "avoid yes/no framing and avoid vague nouns like girl, boy, man, woman, house, room or chair. "
        "Return ONLY a strict JSON list of {max_new} strings."
    ).format(max_new=max_new)
    year = f" It happened around {story.story_year}." if getattr(story, "story_year", None) else ""
    excerpt = (story.story_text or "")[:1500]
    payload = {
        "model": settings.OLLAMA_MODEL,
        "prompt": (
            f"{system}\n\n"
            f"Subject ({anchor.kind}): {anchor.text}.{year}\n\n"
            f"Story excerpt:\n{excerpt}\n\n"
            "Output JSON:"
        ),
        "stream": False,
        "options": {"temperature": 0.4},
    }
    try:
        async with httpx.AsyncClient(timeout=settings.OLLAMA_TIMEOUT) as c:
            r = await c.post(f"{settings.OLLAMA_BASE_URL}/api/generate", json=payload)
            r.raise_for_status()
            data = r.json()
    except Exception as e:
        raise OllamaError(f"Ollama composer failed: {e}") from e

    raw = (data or {}).get("response", "")
    if not raw.strip():
        raise OllamaError("Empty response from Ollama.")
    out = _parse_candidates(raw)
    logger.debug("Ollama proposed %d candidates for anchor %r", len(out), anchor.text)
    return out[:max_new]
