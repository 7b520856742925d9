"""Tests for the load-testing engine.

Runs are kept short (a few hundred milliseconds) and endpoint targets use
``httpx.MockTransport``, so the suite needs no network or external services.
"""
