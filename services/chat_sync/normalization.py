"""Text normalisation applied to inbound chat entries and the resident roster.

Resident names reach the service from two uncoordinated sources: staff typing
into the roster and an external chat integration. Both sides pass through
:func:`normalize_name` so they can be joined by exact string equality.
Timestamps are interpreted as facility civil time (UTC+9) and tagged with an
explicit offset by :func:`to_jst_timestamp`.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from typing import Any

__all__ = [
    "ARCHAIC_KATAKANA",
    "CJK_COMPATIBILITY_VARIANTS",
    "HALF_WIDTH_KATAKANA",
    "JST_OFFSET",
    "normalize_name",
    "to_jst_timestamp",
]

JST_OFFSET = "+09:00"

_HALF_WIDTH = "｡｢｣､･ｦｧｨｩｪｫｬｭｮｯｰｱｲｳｴｵｶｷｸｹｺｻｼｽｾｿﾀﾁﾂﾃﾄﾅﾆﾇﾈﾉﾊﾋﾌﾍﾎﾏﾐﾑﾒﾓﾔﾕﾖﾗﾘﾙﾚﾛﾜﾝﾞﾟ"
_FULL_WIDTH = "。「」、・ヲァィゥェォャュョッーアイウエオカキクケコサシスセソタチツテトナニヌネノハヒフヘホマミムメモヤユヨラリルレロワン゛゜"

# U+FF61..U+FF9F, one entry per code point. The sound marks map to the
# spacing forms U+309B / U+309C.
HALF_WIDTH_KATAKANA: dict[str, str] = dict(zip(_HALF_WIDTH, _FULL_WIDTH))

ARCHAIC_KATAKANA: dict[str, str] = {
    "\u30F0": "\u30A4",  # ヰ -> イ
    "\u30F1": "\u30A8",  # ヱ -> エ
    "\u30F8": "\u30A4\u309B",  # ヸ -> イ゛
    "\u30F9": "\u30A8\u309B",  # ヹ -> エ゛
}

# Compatibility ideographs seen in resident names. FA11 has no canonical
# decomposition, so NFC alone leaves it untouched.
CJK_COMPATIBILITY_VARIANTS: dict[str, str] = {
    "\uFA10": "\u585A",  # 塚
    "\uFA11": "\u5D0E",  # 崎
    "\uFA12": "\u6674",  # 晴
    "\uFA15": "\u51DE",  # 凞
    "\uFA19": "\u795E",  # 神
    "\uFA1A": "\u7965",  # 祥
    "\uFA1B": "\u798F",  # 福
    "\uFA1C": "\u9756",  # 靖
    "\uFA1D": "\u7CBE",  # 精
    "\uFA1E": "\u7FBD",  # 羽
    "\uFA25": "\u9038",  # 逸
    "\uFA45": "\u6D77",  # 海
    "\uFA4C": "\u793E",  # 社
    "\uFA5B": "\u8005",  # 者
    "\uFA67": "\u9038",  # 逸
}

_HALF_WIDTH_TABLE = str.maketrans(HALF_WIDTH_KATAKANA)
_ARCHAIC_TABLE = str.maketrans(ARCHAIC_KATAKANA)
_CJK_TABLE = str.maketrans(CJK_COMPATIBILITY_VARIANTS)

# Spacing sound marks and their combining equivalents.
_SOUND_MARKS = {"\u309B": "\u3099", "\u309C": "\u309A"}


def _compose_sound_marks(text: str) -> str:
    """Fold ``カ゛`` style pairs into ``ガ`` where a precomposed form exists."""

    if not any(mark in text for mark in _SOUND_MARKS):
        return text

    composed: list[str] = []
    for char in text:
        combining = _SOUND_MARKS.get(char)
        if combining is not None and composed:
            candidate = unicodedata.normalize("NFC", composed[-1] + combining)
            if len(candidate) == 1:
                composed[-1] = candidate
                continue
        composed.append(char)
    return "".join(composed)


def normalize_name(name: str | None) -> str:
    """Return the canonical comparison key for a resident name.

    The transform removes every whitespace character (including U+3000),
    widens half-width katakana, replaces archaic katakana, maps a fixed set of
    CJK compatibility ideographs to their canonical form and finishes with
    NFC. It never raises and is idempotent.
    """

    if not name:
        return ""

    text = "".join(name.split())
    # Archaic kana are replaced before sound marks are joined.
    text = text.translate(_HALF_WIDTH_TABLE).translate(_ARCHAIC_TABLE)
    text = _compose_sound_marks(text)
    text = text.translate(_CJK_TABLE)
    return unicodedata.normalize("NFC", text)


_DATETIME_PATTERN = re.compile(
    r"(?P<date>[0-9]{4}-[0-9]{2}-[0-9]{2})[T ](?P<hour>[0-9]{2}):(?P<minute>[0-9]{2})(?::(?P<second>[0-9]{2}))?"
)
_DATE_PATTERN = re.compile(r"(?P<date>[0-9]{4}-[0-9]{2}-[0-9]{2})")


def to_jst_timestamp(raw: Any) -> str | None:
    """Return ``raw`` as ``YYYY-MM-DDTHH:MM:SS+09:00`` or ``None``.

    Accepted shapes, after ``/`` is replaced with ``-``, are
    ``YYYY-MM-DD HH:MM[:SS]`` (``T`` also accepted as separator) and a bare
    ``YYYY-MM-DD``. Everything else, including values naming a day or time
    that does not exist, yields ``None``.
    """

    if not isinstance(raw, str):
        return None
    text = raw.strip().replace("/", "-")
    if not text:
        return None

    match = _DATETIME_PATTERN.fullmatch(text)
    if match is not None:
        clock = f"{match['hour']}:{match['minute']}:{match['second'] or '00'}"
    else:
        match = _DATE_PATTERN.fullmatch(text)
        if match is None:
            return None
        clock = "00:00:00"

    stamp = f"{match['date']}T{clock}"
    try:
        datetime.strptime(stamp, "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return None
    return f"{stamp}{JST_OFFSET}"
