import tempfile
import unicodedata
from pathlib import Path


def _is_relative_to(path: Path, base: Path) -> bool:
    try:
        path.relative_to(base)
        return True
    except ValueError:
        return False


def sanitize_path(path_str: str, project_root: Path) -> Path:
    """Resolve an output path, refusing traversal, symlinks and foreign roots."""

    if not path_str:
        raise ValueError("path required")
    normalized = unicodedata.normalize("NFKC", path_str)
    if ".." in Path(normalized).parts:
        raise ValueError("path traversal not allowed")
    if "\u202e" in normalized or "\u202d" in normalized:
        raise ValueError("unsafe unicode in path")

    tmp_dir = Path(tempfile.gettempdir())
    tmp_root = tmp_dir.resolve()
    project_root = project_root.resolve()
    raw_path = Path(normalized)
    candidate = raw_path if raw_path.is_absolute() else project_root / raw_path
    resolved = candidate.resolve()

    allowed = any(
        _is_relative_to(resolved, root) for root in (project_root, tmp_root)
    )
    if not allowed:
        raise ValueError("path outside allowed roots")
    # resolve() has already followed links, so walk the path as given,
    # stopping at the allowed roots themselves.
    roots = {project_root, tmp_root, tmp_dir}
    for part in [candidate] + list(candidate.parents):
        if part in roots:
            break
        if part.is_symlink():
            raise ValueError("symlink paths not allowed")
    return resolved


def neutralize_csv_field(value):
    """Prefix spreadsheet formula triggers so exported cells stay text."""

    text = "" if value is None else str(value)
    if text.startswith(("=", "+", "-", "@", "\t", "\r")):
        return "'" + text
    return text
