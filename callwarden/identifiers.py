"""
CALLWARDEN Identifiers

Canonical call identifiers and the similarity relation used to compare
them. Function names, method scopes and file paths all go through here.

    normalize("\\Foo->bar")        -> "Foo->bar()"
    normalize("pkg.Klass.method")  -> "pkg.Klass.method()"
    similar("Log.py", "/srv/app/AccessLog.py") -> True
"""

from __future__ import annotations

NAMESPACE_SEPARATORS = "\\."
CALL_SUFFIX = "()"


def normalize(raw: object) -> str | None:
    """
    Canonicalize a function or scope name.

    Leading namespace separators and surrounding whitespace are stripped
    and a trailing "()" is appended when missing. Case is preserved.
    Returns None for empty input; callers must treat None as "no
    identifier", never as a wildcard.
    """
    if raw is None:
        return None
    key = str(raw).strip().lstrip(NAMESPACE_SEPARATORS).strip()
    if not key:
        return None
    if not key.endswith(CALL_SUFFIX):
        key += CALL_SUFFIX
    return key


GLOBAL_SCOPE = normalize("global scope")


def similar(a: str, b: str) -> bool:
    """
    True if the shorter of the two (trimmed) strings occurs inside the longer.

    Used for both file paths and call identifiers so that an abbreviated
    relative path or scope suffix matches its fully-qualified form.
    Accidental substrings match as well ("Log.py" ~ "AccessLog.py").
    """
    a = str(a).strip()
    b = str(b).strip()
    if len(a) > len(b):
        return b in a
    return a in b
