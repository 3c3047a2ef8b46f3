"""Locating the local build output to deploy."""

import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from ..core.exceptions import ArtifactNotFoundError

log = logging.getLogger(__name__)

DEFAULT_CANDIDATES = ("dist", "build", "../dist")


def _search_roots() -> List[Path]:
    roots = [Path.cwd()]
    if sys.argv and sys.argv[0]:
        script_dir = Path(sys.argv[0]).resolve().parent
        if script_dir not in roots:
            roots.append(script_dir)
    return roots


def resolve_artifact_path(
    explicit: Optional[Union[str, Path]] = None,
    candidates: Sequence[str] = DEFAULT_CANDIDATES,
    search_roots: Optional[Iterable[Path]] = None,
) -> Path:
    """Return the directory holding the build to deploy.

    An explicit path wins and must exist. Otherwise each candidate is tried
    against the working directory and then the directory of the running
    script, and the first existing directory is used.

    Raises:
        ArtifactNotFoundError: If no usable directory is found.
    """
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_dir():
            raise ArtifactNotFoundError(f"Artifact directory not found: {path}")
        return path.resolve()

    roots = list(search_roots) if search_roots is not None else _search_roots()
    tried = []
    for root in roots:
        for candidate in candidates:
            path = (Path(root) / candidate).resolve()
            tried.append(str(path))
            if path.is_dir():
                log.debug(f"Using artifact directory {path}")
                return path

    raise ArtifactNotFoundError(
        "No artifact directory found. Pass the build output path explicitly. "
        f"Tried: {', '.join(tried)}"
    )


def count_artifact_files(path: Union[str, Path]) -> int:
    return sum(1 for p in Path(path).rglob("*") if p.is_file())
