"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Backend REST client.
"""

from .client import ApiClient

__all__ = ["ApiClient"]
