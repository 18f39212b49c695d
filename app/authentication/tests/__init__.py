"""
Tests for authentication app.

Usage:
    pytest authentication/tests/
"""
