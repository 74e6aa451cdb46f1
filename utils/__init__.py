"""
Utility modules for the verification service.
"""

from .config import Config

__all__ = ["Config"]
