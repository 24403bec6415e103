# fetchers/__init__.py
from . import marketplace

__all__ = ["marketplace"]
