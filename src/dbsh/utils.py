import os
from pathlib import Path

# --- Centralized Path Constant ---
# The single source of truth for the dbsh home directory.
DBSH_HOME = Path(os.getenv("DBSH_HOME", Path.home() / ".dbsh"))


def resolve_path(path_str: str) -> Path:
    """
    Expands common path patterns into absolute paths.
    - `~` is expanded to the user's home directory.
    - `file:` URIs are parsed to an absolute path, with one or three slashes.
    """
    if path_str.startswith("file:"):
        path_part = path_str.split(":", 1)[1]
        clean_path = path_part.lstrip("/")
        return Path(f"/{clean_path}").resolve()

    # Fallback for standard paths like `~/foo` or `./bar`
    return Path(path_str).expanduser().resolve()
