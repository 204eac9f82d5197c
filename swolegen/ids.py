"""
Stable identifiers for workouts and sets.
"""

import re
import zlib

NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")
MULTI_DASH_RE = re.compile(r"-+")
SLUG_MAX_LEN = 12


def _dash_join(value):
    value = NON_ALNUM_RE.sub("-", value)
    value = MULTI_DASH_RE.sub("-", value)
    return value.strip("-")


def slug(name):
    """
    Compact uppercase slug (A-Z, 0-9, dashes) of at most 12 characters.

    When truncation cuts into the last token, that token keeps at most two
    characters: "Romanian Deadlift (Barbell)" -> "ROMANIAN-DE".
    """
    value = _dash_join((name or "").upper())
    if len(value) <= SLUG_MAX_LEN:
        return value

    value = value[:SLUG_MAX_LEN]
    last_dash = value.rfind("-")
    if last_dash > 0:
        letters = len(value) - (last_dash + 1)
        if letters == 0:
            value = value[:last_dash]
        elif letters > 2:
            value = value[: last_dash + 1 + 2]
    return value


def workout_id(date_iso, location, seed):
    """YYYY-MM-DD-<kebab-location>-NN where NN is a stable hash of ``seed`` mod 100."""
    if isinstance(seed, str):
        seed = seed.encode("utf-8")
    location_part = _dash_join((location or "").lower())
    bucket = zlib.crc32(seed or b"") % 100
    return f"{date_iso}-{location_part}-{bucket:02d}"


def set_id(tier, name, n, warmup=False):
    """<TIER>-<SLUG>-<n>, or <TIER>-<SLUG>-WU<n> for warm-up sets."""
    prefix = f"{(tier or '').upper()}-{slug(name)}"
    if warmup:
        return f"{prefix}-WU{n}"
    return f"{prefix}-{n}"
