"""CLI layer — argument parsing, server startup and the error boundary.

This package is the outermost layer of the application.  It may import
from ``core``, ``infra``, ``web`` and ``utils``; no other layer imports
from ``cli``.
"""
