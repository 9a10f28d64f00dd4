"""Small string helpers shared by the registry, pages and saves."""

import re


def humanize_name(name: str) -> str:
    """Turn a knot or path identifier into display words.

    "creditsPage" → "Credits Page", "the_end" → "The End",
    "NPCDialogue" → "Npc Dialogue"
    """
    text = re.sub(r"([a-z])([A-Z])", r"\1 \2", name)
    text = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", text)
    text = text.replace("_", " ").lower()
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" ") if word)


def levenshtein(a: str, b: str) -> int:
    """Minimum number of single-character edits turning a into b."""
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(a) + 1))
    for i, cb in enumerate(b, start=1):
        current = [i]
        for j, ca in enumerate(a, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def first_sentence(text: str, limit: int = 100) -> str:
    """First sentence of text, ellipsized past limit characters, with a full stop."""
    if not text:
        return ""
    sentence = text.split(".")[0].strip()
    if len(sentence) > limit:
        sentence = sentence[: limit - 3] + "..."
    return sentence + "."
