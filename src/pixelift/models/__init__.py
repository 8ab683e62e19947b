"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata.
"""

from pixelift.models.enhancement_attempt import EnhancementAttempt
from pixelift.models.photo import Photo, PhotoStatus
from pixelift.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "Photo",
    "PhotoStatus",
    "EnhancementAttempt",
]
