import re
from typing import Iterable, Optional

UNKNOWN = "unknown"
CERTIFIED_ORGANIC = "certified_organic"
CERTIFIED_FAIR_TRADE = "certified_fair_trade"

_ORGANIC_TEXT_RE = re.compile(
    r"\b(organic|bio|biologique|biológico|biologico|ökologisch|oko|eko|usda organic|ab agriculture biologique)\b",
    re.IGNORECASE,
)
_FAIR_TRADE_TEXT_RE = re.compile(
    r"\b(fair[\s-]?trade|commerce [ée]quitable|max havelaar|rainforest alliance)\b",
    re.IGNORECASE,
)

_ORGANIC_TAG_PARTS = ("organic", "bio", "ab-agriculture-biologique", "eu-organic", "usda-organic")
_FAIR_TRADE_TAG_PARTS = ("fair-trade", "fairtrade", "commerce-equitable", "max-havelaar")


def _tag_body(tag: str) -> str:
    # "en:eu-organic" -> "eu-organic"
    return tag.split(":", 1)[-1].strip().lower()


def _has_tag(tags: Iterable[str], parts) -> bool:
    for tag in tags or []:
        if not isinstance(tag, str):
            continue
        body = _tag_body(tag)
        for part in parts:
            if body == part or body.startswith(part + "-") or body.endswith("-" + part) or f"-{part}-" in body:
                return True
    return False


def has_organic_signal(labels: Optional[str], labels_tags: Iterable[str]) -> bool:
    if labels and _ORGANIC_TEXT_RE.search(labels):
        return True
    return _has_tag(labels_tags, _ORGANIC_TAG_PARTS)


def has_fair_trade_signal(labels: Optional[str], labels_tags: Iterable[str]) -> bool:
    if labels and _FAIR_TRADE_TEXT_RE.search(labels):
        return True
    return _has_tag(labels_tags, _FAIR_TRADE_TAG_PARTS)


def merge_status(vision_status: Optional[str], database_signal: bool, certified_value: str) -> str:
    """
    The vision assessment wins whenever it is known; the database label only
    fills in an unknown.
    """
    if vision_status and vision_status != UNKNOWN:
        return vision_status
    return certified_value if database_signal else UNKNOWN
