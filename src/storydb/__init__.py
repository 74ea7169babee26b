"""storydb - Decode stories and their JSON-aggregated chapters from SQL rows."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("storydb")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
