"""
Visitor classification from the User-Agent header (framework-agnostic).

Combines two detection methods:
1. ``crawlerdetect`` library (signature-based)
2. regex patterns loaded lazily from ``bot_user_agents.txt`` beside this module

A request with no usable User-Agent is classified as ``unknown`` rather than
guessed at; everything else is ``bot`` or ``human``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from crawlerdetect import CrawlerDetect

VisitorClass = Literal["bot", "human", "unknown"]

_PATTERNS_FILE = Path(__file__).with_name("bot_user_agents.txt")

_crawler_detect = CrawlerDetect()


@lru_cache(maxsize=1)
def _load_bot_user_agents() -> tuple[re.Pattern[str], ...]:
    """Load and compile bot UA patterns once.

    Returns an empty tuple if the file cannot be read so that callers
    degrade gracefully rather than raising at import time.
    """
    try:
        with _PATTERNS_FILE.open("r", encoding="utf-8") as fh:
            lines = [line.strip() for line in fh]
    except OSError:
        return ()
    return tuple(
        re.compile(line, re.IGNORECASE)
        for line in lines
        if line and not line.startswith("#")
    )


def is_bot_request(user_agent: str) -> bool:
    """Return True if *user_agent* looks like an automated crawler or client."""
    if _crawler_detect.isCrawler(user_agent):
        return True
    return any(pattern.search(user_agent) for pattern in _load_bot_user_agents())


def classify_visitor(user_agent: Optional[str]) -> VisitorClass:
    """Bucket a request into ``bot``, ``human`` or ``unknown``.

    Args:
        user_agent: The raw ``User-Agent`` header value, possibly missing.

    Returns:
        ``unknown`` for a missing or blank header, otherwise ``bot`` when
        either detector fires and ``human`` when neither does.
    """
    if user_agent is None or not user_agent.strip():
        return "unknown"
    if is_bot_request(user_agent):
        return "bot"
    return "human"
