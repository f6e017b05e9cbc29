"""
Local file-based implementations.
"""

from .catalog import LocalProductCatalog

__all__ = ["LocalProductCatalog"]
