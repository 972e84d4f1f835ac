"""Tag predicates applied to a series' dimension map.

A tag is either a bare token, which must appear somewhere in the dimension
keys or values, or `key=value`, which needs one dimension whose key contains
`key` and whose value contains `value`. Matching is case-insensitive and all
tags must match.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional


@dataclass(frozen=True)
class TagPredicate:
    raw: str
    token: Optional[str] = None
    key: Optional[str] = None
    value: Optional[str] = None

    @property
    def is_pair(self) -> bool:
        return self.token is None

    def matches(self, entries: List[tuple], blob: str) -> bool:
        if not self.is_pair:
            return self.token in blob
        # "key=" or "=value" halves never match
        if not self.key or not self.value:
            return False
        return any(self.key in k and self.value in v for k, v in entries)


def parse_tag(raw: str) -> Optional[TagPredicate]:
    """Parse one tag string; blank tags yield None and are ignored."""
    tag = raw.strip().lower()
    if not tag:
        return None
    eq = tag.find("=")
    if eq > 0:
        return TagPredicate(raw=raw, key=tag[:eq].strip(), value=tag[eq + 1:].strip())
    return TagPredicate(raw=raw, token=tag)


def parse_tags(tags: Iterable[str]) -> List[TagPredicate]:
    return [p for p in (parse_tag(t) for t in tags) if p is not None]


def matches_tags(dimension_map: Dict[str, str], required_tags: Iterable[str]) -> bool:
    predicates = parse_tags(required_tags)
    if not predicates:
        return True
    entries = [(k.lower(), (v or "").lower()) for k, v in dimension_map.items()]
    blob = f"{' '.join(k for k, _ in entries)} {' '.join(v for _, v in entries)}"
    return all(p.matches(entries, blob) for p in predicates)
