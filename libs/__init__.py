"""Shared libraries for the load-testing engine.

Subpackages:
- ``libs.common``: configuration, logging, and metrics.

Notes:
- Keep engine-specific logic in ``performance``; modules here stay generic.
"""
