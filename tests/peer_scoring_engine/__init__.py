"""
Tests for the Peer Scoring Engine.

This package contains tests for:
- QASS components and pipelines
- Webavalia model
- Configuration loading and validation
- Engine facade and observer hook
- Command-line simulator
"""
