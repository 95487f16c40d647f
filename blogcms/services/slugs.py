"""
Slug derivation.

``slugify`` is deterministic: lowercase, transliterate to ASCII, turn
whitespace and punctuation into hyphens, collapse repeated hyphens.
``unique_slug`` resolves collisions by appending ``-2``, ``-3``, ... and
keeps the result within the slug column of the model.
"""
import re
import unicodedata

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Letters NFKD does not decompose into ASCII.
_TRANSLIT: dict[str, str] = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "kh", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "shch",
    "ъ": "", "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
    "і": "i", "ї": "yi", "є": "ye", "ґ": "g",
    "ß": "ss", "æ": "ae", "œ": "oe", "ø": "o", "đ": "d", "ð": "d",
    "þ": "th", "ł": "l", "ı": "i",
}

# Apostrophes and quotes vanish instead of splitting a word.
_SLUG_DROP_RE = re.compile(r"[\"'`’‘]")
_SLUG_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")

# Room kept free at the end of the column for a "-N" suffix.
_SUFFIX_ROOM = 6


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase ASCII slug derived from *text*."""
    text = "".join(_TRANSLIT.get(ch, ch) for ch in text.lower())
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = _SLUG_DROP_RE.sub("", text)
    return _SLUG_SEPARATOR_RE.sub("-", text).strip("-")


async def unique_slug(
    db: AsyncSession,
    model,
    source: str,
    fallback: str,
    exclude_id: int | None = None,
) -> str:
    """
    Return ``slugify(source)`` or, when another row of *model* already
    uses it, the first free ``<slug>-N`` with N starting at 2.

    *exclude_id* skips the row being updated so an unchanged slug is not
    treated as a collision with itself.

    Transliteration can make a slug longer than its source ("щ" becomes
    "shch"), so the base is cut to the column length minus room for the
    suffix.
    """
    max_length = model.__table__.c.slug.type.length
    base = slugify(source)[: max_length - _SUFFIX_ROOM].rstrip("-") or fallback
    q = select(model.slug).where(
        (model.slug == base) | model.slug.like(f"{base}-%")
    )
    if exclude_id is not None:
        q = q.where(model.id != exclude_id)
    taken = set((await db.execute(q)).scalars().all())

    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"
