"""Utility functions package."""

from llm_relay.utils.logger import bind_request_context, configure_logging, get_logger

__all__ = ["bind_request_context", "configure_logging", "get_logger"]
