"""Preserve rule matching"""

from typing import Iterable, List, Sequence, Tuple


def normalize_rel(path: str) -> str:
    """Normalize a relative path: forward slashes, no leading './' or '/'"""
    rel = str(path).replace("\\", "/")
    while rel.startswith("./"):
        rel = rel[2:]
    return rel.lstrip("/")


def is_preserved(rel_path: str, rules: Iterable[str]) -> bool:
    """Return True if any rule matches rel_path

    A rule ending in '/' matches every path under that directory,
    any other rule matches only the exact path.
    """
    rel = normalize_rel(rel_path)
    for rule in rules:
        if rule.endswith("/"):
            if rel.startswith(rule):
                return True
        elif rel == rule:
            return True
    return False


class PreserveMatcher:
    """Classifies release and remote paths as preserved or not"""

    def __init__(self, rules: Iterable[str] = ()):
        self.rules: Tuple[str, ...] = tuple(
            rule for rule in (normalize_rel(r.strip()) for r in rules) if rule
        )

    def is_preserved(self, rel_path: str) -> bool:
        return is_preserved(rel_path, self.rules)

    def is_preserved_dir(self, rel_dir: str) -> bool:
        """A directory is preserved when a prefix rule covers it"""
        return is_preserved(normalize_rel(rel_dir).rstrip("/") + "/", self.rules)

    def partition(self, paths: Sequence[str]) -> Tuple[List[str], List[str]]:
        """Split paths into (preserved, non_preserved), keeping input order"""
        preserved, other = [], []
        for path in paths:
            (preserved if self.is_preserved(path) else other).append(normalize_rel(path))
        return preserved, other

    def __repr__(self) -> str:
        return f"PreserveMatcher({list(self.rules)!r})"
