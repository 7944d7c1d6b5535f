"""
.. include:: ../README.md
"""

__all__ = [
    "bootstrap",
    "config",
    "install",
    "kubectl",
    "sync",
    "poll",
    "deploy_key",
    "manifest",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
