"""
Models package for the TravlrHub proximity service.
"""

from .user import User

__all__ = ["User"]
