"""Deterministic storage path resolution from templates."""

import re
from typing import Optional

from asset_ingest.errors import InvalidPath, MissingParameter

DEFAULT_PATH_TEMPLATE = "{base}/{key}/v{version}/{key}.{ext}"


def sanitize_segment(value: str) -> str:
    """Strip ``..`` sequences, collapse slashes and trim slashes at both ends."""
    value = value.replace("..", "")
    value = re.sub(r"/+", "/", value)
    return value.strip("/")


def sanitize_extension(ext: str) -> str:
    """Lower-case an extension and drop its leading dots."""
    return ext.lstrip(".").lower()


def extension_of(filename: str) -> str:
    """Return the text after the last dot, or ``""`` for dotfiles and bare names."""
    last_dot = filename.rfind(".")
    return filename[last_dot + 1:] if last_dot > 0 else ""


def resolve_path(
    base: Optional[str],
    key: Optional[str],
    version: Optional[int],
    ext: Optional[str],
    template: Optional[str] = None,
) -> str:
    """Resolve a relative storage path for one revision.

    Placeholders are replaced literally; ``{key}`` appears twice in the
    default template and both occurrences are filled.

    Args:
        base: Base directory of the sub-asset
        key: Sub-asset key
        version: Revision number (positive integer)
        ext: File extension, with or without leading dot
        template: Path template (defaults to ``DEFAULT_PATH_TEMPLATE``)

    Returns:
        Relative path, e.g. ``assets/sprites/player/v1/player.png``

    Raises:
        MissingParameter: If base, key, version or ext is absent or empty
        InvalidPath: If the resolved path contains ``..`` or ``//`` or is absolute

    Examples:
        >>> resolve_path("assets/sprites", "player", 1, "PNG")
        'assets/sprites/player/v1/player.png'
    """
    if not base or not key or not ext:
        raise MissingParameter("Missing required parameters: base, key, version, ext")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise MissingParameter("Missing required parameters: version must be a positive integer")

    clean_ext = sanitize_extension(ext)
    if not clean_ext:
        raise MissingParameter(f"Extension {ext!r} is empty after sanitizing")

    resolved = (
        (template or DEFAULT_PATH_TEMPLATE)
        .replace("{base}", sanitize_segment(base))
        .replace("{key}", sanitize_segment(key))
        .replace("{version}", str(version))
        .replace("{ext}", clean_ext)
    )

    if ".." in resolved or "//" in resolved or resolved.startswith("/"):
        raise InvalidPath(f"Invalid path: {resolved!r} contains unsafe segments")

    return resolved
