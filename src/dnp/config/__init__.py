"""Configuration package."""

from dnp.config.settings import MissingEnvironmentError, Settings

__all__ = ["MissingEnvironmentError", "Settings"]
