"""
robots.txt parsing for the crawler.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

_WILDCARD_RE = re.compile(r"(\*|\$)")


@dataclass(slots=True)
class RobotsPolicy:
    """Allow/Disallow prefixes of the ``User-agent: *`` groups plus all Sitemap URLs.

    The longest matching rule decides. An Allow rule only overrides a Disallow
    rule when its matched prefix is strictly longer. ``*`` and a trailing ``$``
    are honoured inside prefixes.
    """

    disallowed_prefixes: List[str] = field(default_factory=list)
    allowed_prefixes: List[str] = field(default_factory=list)
    sitemaps: List[str] = field(default_factory=list)
    _regex_cache: Dict[str, re.Pattern[str]] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def allow_all(cls) -> RobotsPolicy:
        return cls()

    @classmethod
    def parse(cls, text: str) -> RobotsPolicy:
        policy = cls()
        for agents, directives in _groups(text, policy.sitemaps):
            if "*" not in agents:
                continue
            for directive, value in directives:
                if directive == "allow":
                    policy.allowed_prefixes.append(value)
                else:
                    policy.disallowed_prefixes.append(value)
        return policy

    def is_allowed(self, path: str) -> bool:
        path = path or "/"
        disallow = self._longest_match(path, self.disallowed_prefixes)
        if disallow < 0:
            return True
        return self._longest_match(path, self.allowed_prefixes) > disallow

    def _longest_match(self, path: str, patterns: List[str]) -> int:
        best = -1
        for pattern in patterns:
            if self._match_path(path, pattern):
                best = max(best, _rule_len(pattern))
        return best

    def _match_path(self, path: str, pattern: str) -> bool:
        if pattern not in self._regex_cache:
            esc = re.escape(pattern).replace(r"\*", ".*")
            if pattern.endswith("$"):
                esc = esc[:-2] + "$"
            self._regex_cache[pattern] = re.compile(f"^{esc}")
        return bool(self._regex_cache[pattern].match(path))


def _rule_len(pattern: str) -> int:
    return len(_WILDCARD_RE.sub("", pattern))


def _groups(text: str, sitemaps: List[str]) -> List[Tuple[List[str], List[Tuple[str, str]]]]:
    """Split robots.txt into (agents, directives) groups; Sitemap lines are collected globally."""
    groups: List[Tuple[List[str], List[Tuple[str, str]]]] = []
    current: Optional[Tuple[List[str], List[Tuple[str, str]]]] = None
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, _, val = line.partition(":")
        key = key.strip().lower()
        val = val.strip()
        if key == "sitemap":
            if val:
                sitemaps.append(val)
        elif key == "user-agent":
            # consecutive User-agent lines share one group
            if current is None or current[1]:
                current = ([], [])
                groups.append(current)
            current[0].append(val.lower())
        elif key in ("allow", "disallow"):
            # empty Disallow allows everything
            if not val or current is None:
                continue
            current[1].append((key, val))
    return groups
