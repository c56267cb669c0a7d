"""Tests for the business records layer.

Everything here runs against the in-memory record service or an
``httpx.MockTransport``; no remote project is required.
"""
