"""Repository layer for Pixelift backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from pixelift.repositories.enhancement_attempt import EnhancementAttemptRepository
from pixelift.repositories.photo import PhotoRepository
from pixelift.repositories.user import UserRepository

__all__ = [
    "UserRepository",
    "PhotoRepository",
    "EnhancementAttemptRepository",
]
