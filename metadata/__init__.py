from .errors import CollaboratorUnavailable, DataIntegrityWarning, InputError, InvariantViolation
from .types import Song, create_song, validate_song

__all__ = [
    "CollaboratorUnavailable",
    "DataIntegrityWarning",
    "InputError",
    "InvariantViolation",
    "Song",
    "create_song",
    "validate_song",
]
