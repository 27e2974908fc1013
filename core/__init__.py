"""
Core business logic package for Owl Focus.

Contains the headless SessionController, its scheduler and the quit
captcha. Zero UI dependencies.
"""

from core.controller import SessionController

__all__ = ["SessionController"]
