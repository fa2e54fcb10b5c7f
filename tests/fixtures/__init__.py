"""Shared pytest fixtures for the contacts data layer."""

from .core import *  # noqa: F401,F403
