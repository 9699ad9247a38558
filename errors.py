"""Exceptions raised by the data and AI layers and handled in the routes."""


class MediTrackError(Exception):
    """Base class for application errors."""


class ValidationError(MediTrackError):
    """Caller-supplied input was missing or malformed."""


class DatabaseError(MediTrackError):
    """A Supabase call failed."""


class AIServiceError(MediTrackError):
    """The hosted model could not be reached or returned unusable output."""


class AuthError(MediTrackError):
    """Sign-up or sign-in was rejected by Supabase Auth."""
