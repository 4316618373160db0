"""Student identifier generation."""
import re
import secrets
import unicodedata
from datetime import date
from typing import Collection, Optional

# No 0/O or 1/I so ids survive being read aloud or copied by hand
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_ATTEMPTS = 20


def initials(name: str, limit: int = 3) -> str:
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    words = re.findall(r"[A-Za-z]+", ascii_name)
    letters = "".join(w[0] for w in words[:limit]).upper()
    return letters or "ST"


def _suffix(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def generate_student_id(name: str, taken: Collection[str] = (), today: Optional[date] = None) -> str:
    """Build ``<INITIALS>-<YYMMDD>-<random>`` not present in ``taken``.

    Same-named students approved on the same day only collide if the random
    part repeats, and ``taken`` catches that; after MAX_ATTEMPTS the random
    part is widened.
    """
    stamp = (today or date.today()).strftime("%y%m%d")
    prefix = f"{initials(name)}-{stamp}-"
    for _ in range(MAX_ATTEMPTS):
        candidate = prefix + _suffix(4)
        if candidate not in taken:
            return candidate
    while True:
        candidate = prefix + _suffix(8)
        if candidate not in taken:
            return candidate


def ensure_student_id(current: Optional[str], name: str, taken: Collection[str] = ()) -> str:
    """Return ``current`` untouched when set; otherwise mint a new id."""
    if current:
        return current
    return generate_student_id(name, taken)
