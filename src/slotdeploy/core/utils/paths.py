"""Remote path helpers.

Remote paths are slash-separated absolute strings. Every transport runs its
path arguments through :func:`normalize_remote` before touching the server,
so two spellings of the same location always compare equal.
"""

import re

_SEPARATORS = re.compile(r"/{2,}")


def normalize_remote(path: str) -> str:
    """Return the canonical form of a remote path.

    Back-slashes become forward slashes, doubled separators collapse, a single
    leading slash is enforced and the trailing slash is dropped (except for
    the root itself). Blank input maps to the root.

    Examples:
        >>> normalize_remote("site\\\\assets//app.js")
        '/site/assets/app.js'
        >>> normalize_remote("/site/")
        '/site'
        >>> normalize_remote("")
        '/'
    """
    if path is None or not str(path).strip():
        return "/"

    normalized = str(path).strip().replace("\\", "/")
    normalized = _SEPARATORS.sub("/", "/" + normalized)
    if len(normalized) > 1:
        normalized = normalized.rstrip("/")
    return normalized or "/"


def join_remote(*parts: str) -> str:
    """Join path fragments and normalize the result."""
    fragments = [str(p).replace("\\", "/").strip("/") for p in parts if p]
    return normalize_remote("/".join(f for f in fragments if f))


def parent_of(path: str) -> str:
    normalized = normalize_remote(path)
    if normalized == "/":
        return "/"
    return normalize_remote(normalized.rsplit("/", 1)[0])


def name_of(path: str) -> str:
    return normalize_remote(path).rsplit("/", 1)[-1]


def is_same_path(left: str, right: str) -> bool:
    """Compare two remote paths the way FTP servers on Windows hosts do."""
    return normalize_remote(left).lower() == normalize_remote(right).lower()


def is_within(base: str, path: str) -> bool:
    """True when ``path`` is ``base`` or lives somewhere below it."""
    base_n = normalize_remote(base).lower()
    path_n = normalize_remote(path).lower()
    if base_n == "/":
        return True
    return path_n == base_n or path_n.startswith(base_n + "/")


def relative_to(base: str, path: str) -> str:
    """Return ``path`` relative to ``base`` without surrounding slashes.

    Paths outside ``base`` come back stripped of their leading slash, which
    matches how entries are relocated between slots.
    """
    path_n = normalize_remote(path)
    if is_within(base, path_n):
        base_n = normalize_remote(base)
        return path_n[len(base_n):].strip("/") if base_n != "/" else path_n.strip("/")
    return path_n.strip("/")
