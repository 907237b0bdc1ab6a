"""
Read API for stored odds.
"""

from .main import create_app

__all__ = ["create_app"]
