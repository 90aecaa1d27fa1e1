"""Object key and staging path helpers.

Object keys are built from a prefix and one or more relative parts joined
with ``/``. A filename that is mirrored into a local staging directory may
use any characters an object key allows, but its components are checked so
a remote key can never resolve to a path outside the staging directory.
"""
from __future__ import annotations

import os

# Longest file name most local filesystems accept (NAME_MAX).
MAX_COMPONENT_LENGTH = 255

# Characters that would change how a component is split or stored locally.
_FORBIDDEN_IN_COMPONENT = {"\0"} | {
    sep for sep in (os.sep, os.altsep) if sep and sep != "/"}


def split_relative_name(filename: str) -> tuple[str, ...]:
    """Split a ``/``-separated relative filename into validated components.

    Args:
        filename: Relative name such as ``"index.yaml"`` or
            ``"charts/index@2.yaml"``.

    Returns:
        tuple[str, ...]: Non-empty path components.

    Raises:
        TypeError: If filename is not a string.
        ValueError: If filename is empty or absolute, or a component is
            empty, ``.``/``..``, too long, or contains a NUL byte or a
            platform path separator other than ``/``.
    """
    if not isinstance(filename, str):
        raise TypeError(f"Filename must be a str, got {type(filename)!r}")
    if not filename:
        raise ValueError("Filename must be non-empty")
    if filename.startswith("/"):
        raise ValueError(f"Filename must be relative, got {filename!r}")
    components = tuple(filename.split("/"))
    for component in components:
        if not component:
            raise ValueError(f"Empty path component in {filename!r}")
        if component in (".", ".."):
            raise ValueError(f"Path traversal component in {filename!r}")
        if len(component) > MAX_COMPONENT_LENGTH:
            raise ValueError(
                f"Path component longer than {MAX_COMPONENT_LENGTH} "
                f"characters in {filename!r}")
        if any(c in _FORBIDDEN_IN_COMPONENT for c in component):
            raise ValueError(
                f"Filename {filename!r} contains a NUL byte or path separator")
    return components


def build_object_key(prefix: str, *parts: str) -> str:
    """Join a key prefix and relative parts into a full object key.

    Leading and trailing slashes of every piece are dropped, and empty
    pieces are skipped, so ``build_object_key("", "a")`` is ``"a"`` and
    ``build_object_key("charts/", "/index.yaml")`` is ``"charts/index.yaml"``.
    """
    pieces = [p.strip("/") for p in (prefix, *parts)]
    return "/".join(p for p in pieces if p)


def build_staging_path(staging_dir: str, filename: str,
                       create_subdirs: bool = False) -> str:
    """Convert a relative filename into a path inside the staging directory.

    Args:
        staging_dir: Local directory that holds staging files.
        filename: Relative, ``/``-separated name of the object.
        create_subdirs: If True, create missing intermediate directories.

    Returns:
        str: Absolute path of the staging file.

    Raises:
        ValueError: If filename is invalid or resolves outside staging_dir.
    """
    components = split_relative_name(filename)
    base_dir = os.path.abspath(staging_dir)
    final_path = os.path.join(base_dir, *components)

    real_base = os.path.realpath(base_dir)
    real_final = os.path.realpath(final_path)
    if os.path.commonpath([real_base, real_final]) != real_base:
        raise ValueError(
            f"Staging path for {filename!r} escapes {staging_dir!r}")

    if create_subdirs:
        os.makedirs(os.path.dirname(final_path), exist_ok=True)
    return final_path
