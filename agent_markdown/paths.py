"""Mapping of page paths onto pre-generated Markdown artifacts."""

from agent_markdown.config import FilePattern


def is_artifact_path(path: str, prefix: str) -> bool:
    """Return True if *path* already points into the artifact tree."""
    return path.startswith(prefix + "/")


def to_artifact_path(path: str, prefix: str, pattern: FilePattern) -> str:
    """
    Translate a request path (without query string) into the path of its
    Markdown artifact.

    ``/`` -> ``{prefix}/index.md``, ``/about`` -> ``{prefix}/about/index.md``
    or ``{prefix}/about.md`` depending on *pattern*. Paths already under
    the prefix are returned untouched, so the mapping is idempotent.
    """
    if is_artifact_path(path, prefix):
        return path

    if path.endswith("/"):
        path = path[:-1]

    if not path:
        return f"{prefix}/index.md"

    if pattern is FilePattern.INDEX:
        return f"{prefix}{path}/index.md"
    return f"{prefix}{path}.md"
