"""M0: Character Sets & Normalizer — supported alphabets and text folding onto them.

Each script lives in its own table so lattices and tests can refer to it by
name. Charsets are ordered tuples: order drives lattice placement and the
symbol indices of the extended binary format.
"""

from collections.abc import Iterable

from qbc.errors import ConfigurationError
from qbc.logging import get_logger

log = get_logger("charset")

# ---------------------------------------------------------------------------
# Script tables
# ---------------------------------------------------------------------------

LATIN = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SPACE = " "
DIGITS = "0123456789"
PUNCTUATION = ".,!?;:'\"-()&@#$%*+=/"
CYRILLIC = "АБВГДЕЁЖЗИЙКЛМНОПРСТУФХЦЧШЩЪЫЬЭЮЯ"
GREEK = "ΑΒΓΔΕΖΗΘΙΚΛΜΝΞΟΠΡΣΤΥΦΧΨΩ"
HEBREW = "אבגדהוזחטיכלמנסעפצקרשת"
# 40 high-frequency Han characters
CJK = "的一是不了人我在有他这中大来上国个到说们为子和你地出道也时年得就那要下以生会自着"
ARABIC = "ابتثجحخدذرزسشصضطظعغفقكلمنهوي"


def build_charset(*tables: Iterable[str]) -> tuple[str, ...]:
    """Concatenate script tables into one ordered, duplicate-free charset."""
    seen: dict[str, None] = {}
    for table in tables:
        for ch in table:
            seen.setdefault(ch, None)
    return tuple(seen)


# Restricted 2D charset: A-Z + space (27 symbols, fits the 1-byte wire code)
BASIC_CHARSET = build_charset(LATIN, SPACE)

# Multi-script charset used by the 3D lattices
EXTENDED_CHARSET = build_charset(
    LATIN, SPACE, DIGITS, PUNCTUATION, CYRILLIC, GREEK, HEBREW, CJK, ARABIC,
)

CHARSETS: dict[str, tuple[str, ...]] = {
    "basic": BASIC_CHARSET,
    "extended": EXTENDED_CHARSET,
}


def resolve_charset(charset: str | Iterable[str]) -> tuple[str, ...]:
    """Accept a charset name ("basic" / "extended") or any iterable of symbols."""
    if isinstance(charset, str):
        try:
            return CHARSETS[charset]
        except KeyError:
            raise ConfigurationError(
                f"Unknown charset: {charset!r}. Choose from {list(CHARSETS)}",
                kind="unsupported-charset",
            ) from None
    return build_charset(charset)


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

def normalize(text: str, charset: Iterable[str]) -> str:
    """Fold *text* onto *charset*.

    Each character is uppercased and kept in that form when the uppercase is
    supported; otherwise the original character is kept if supported;
    otherwise it is dropped. No separators are reinserted.
    """
    allowed = charset if isinstance(charset, (set, frozenset)) else frozenset(charset)
    kept = []
    for ch in text:
        upper = ch.upper()
        if upper in allowed:
            kept.append(upper)
        elif ch in allowed:
            kept.append(ch)
    return "".join(kept)
