"""
유틸리티 함수.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

TOKEN_RE = re.compile(r"\w+")
MIN_TOKEN_LENGTH = 2
MAX_TOKENS = 5


def tokenize(question: str | None) -> list[str]:
    """
    검색어를 단어 토큰으로 나누는 함수.
    - 길이 2 미만 토큰은 버린다.
    - 앞에서부터 최대 5개까지만 쓴다(6번째 이후는 오류 없이 버림).
    Args:
        question: str (원본 검색어)
    Returns:
        list[str]: 토큰 목록
    """
    if not question:
        return []
    tokens = [t for t in TOKEN_RE.findall(str(question)) if len(t) >= MIN_TOKEN_LENGTH]
    return tokens[:MAX_TOKENS]


def is_blank(value: Any) -> bool:
    """None, 빈 문자열/공백 문자열, 빈 컬렉션이면 True."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def to_utc(dt: datetime | None) -> datetime | None:
    """
    datetime을 UTC로 맞추는 함수.
    tzinfo가 없는 값은 UTC로 간주한다.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def truncate_text(text: str | None, length: int) -> str | None:
    if is_blank(text):
        return None
    return f"{text[:length]}..." if len(text) > length else text


def clamp_limit(limit: Any, default: int, maximum: int) -> int:
    """
    페이지 크기를 [1, maximum] 범위로 맞춘다.
    숫자가 아니거나 0 이하이면 기본값으로 되돌린다.
    """
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        return default
    limit = min(limit, maximum)
    return default if limit <= 0 else limit


def clamp_offset(offset: Any) -> int:
    try:
        return max(int(offset), 0)
    except (TypeError, ValueError):
        return 0
