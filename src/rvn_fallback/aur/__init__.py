"""Fallback to the community source-package repository (AUR).

Packages are looked up over the RPC interface, checked out, and built locally from their recipe.
"""

from ..models import map_dependency
from .client import SkipReason, SourceLookup, SourceRepositoryClient
from .recipe import RecipeExtractor, RecipeParser, ShellRecipeExtractor, TextRecipeExtractor

__all__ = [
    "RecipeExtractor",
    "RecipeParser",
    "ShellRecipeExtractor",
    "SkipReason",
    "SourceLookup",
    "SourceRepositoryClient",
    "TextRecipeExtractor",
    "map_dependency",
]
