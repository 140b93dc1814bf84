from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional

from app.schemas.products import ProductCandidate

# One bullet, hyphen or asterisk plus any whitespace after it
_LIST_MARKER = re.compile(r"^[-*•]\s*")


def clean_line(line: str) -> str:
    return _LIST_MARKER.sub("", line.strip(), count=1).strip()


def parse_product_names(text: str) -> List[str]:
    """Split a free-text vision reply into product names.

    Order is preserved; duplicates and casing are left untouched.
    """
    names = []
    for line in (text or "").splitlines():
        name = clean_line(line)
        if name:
            names.append(name)
    return names


def parse_products(text: str, now: Optional[datetime] = None) -> List[ProductCandidate]:
    added = now or datetime.now(timezone.utc)
    return [ProductCandidate(name=name, stock=1, added=added) for name in parse_product_names(text)]
