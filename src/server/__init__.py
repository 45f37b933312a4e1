"""Reference HTTP service for contractor links and scope sheets."""

from .app import app

__all__ = ["app"]
