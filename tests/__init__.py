"""Tests for llm_relay."""
