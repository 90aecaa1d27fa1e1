"""Version information for the s3publish package."""

from importlib import metadata as _md

try:
    __version__ = _md.version("s3publish")
except _md.PackageNotFoundError:
    __version__ = "unknown"
