"""Path discovery for the specs directory."""

from pathlib import Path
from typing import Final

SPECS_DIR_CANDIDATES: Final = (".specs", "specs")


def find_git_root(start: Path | None = None) -> Path | None:
    """Walk up from ``start`` to the nearest directory containing ``.git``.

    Args:
        start: Directory to start from (defaults to the current directory).

    Returns:
        The repository root, or None when not inside a repository.
    """
    current = (start if start is not None else Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / ".git").exists():
            return directory
    return None


def resolve_specs_dir(
    path: str = "",
    *,
    auto_detect: bool = True,
    cwd: Path | None = None,
) -> Path:
    """Resolve the directory holding specification documents.

    Resolution order:
    1. An explicit ``path`` (relative paths resolve against ``cwd``).
    2. With ``auto_detect``, the first existing directory among
       ``<git-root>/.specs``, ``<git-root>/specs``, ``<cwd>/.specs``
       and ``<cwd>/specs``.
    3. ``.specs`` under the git root, or under ``cwd`` outside a repository.

    Args:
        path: Explicit specs directory.
        auto_detect: Whether to search for an existing directory.
        cwd: Working directory (defaults to the process working directory).

    Returns:
        The resolved specs directory (it may not exist yet).
    """
    base = cwd if cwd is not None else Path.cwd()
    if path:
        return (base / path).resolve()

    git_root = find_git_root(base)
    if auto_detect:
        search_roots = [root for root in (git_root, base) if root is not None]
        for root in search_roots:
            for name in SPECS_DIR_CANDIDATES:
                candidate = root / name
                if candidate.is_dir():
                    return candidate.resolve()

    return ((git_root if git_root is not None else base) / ".specs").resolve()
