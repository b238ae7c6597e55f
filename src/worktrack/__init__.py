"""worktrack - a lightweight, file-backed issue tracker."""

from worktrack._version import version as __version__

__all__ = ["__version__"]
