from pathlib import Path

SQLITE_PREFIXES = ("sqlite:///", "sqlite+pysqlite:///")


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Resolve ``sqlite:///./relative/path`` against ``project_root``.

    The ``sqlite+pysqlite`` driver spelling is handled too; in-memory and
    non-SQLite URLs are returned unchanged.
    """
    for prefix in SQLITE_PREFIXES:
        relative_prefix = prefix + "./"
        if url.startswith(relative_prefix):
            rel = url[len(relative_prefix):]
            return f"{prefix}{(project_root / rel).resolve()}"
    return url
