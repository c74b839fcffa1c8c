"""Credential handling."""

from .token_provider import TokenProvider, login

__all__ = ["TokenProvider", "login"]
