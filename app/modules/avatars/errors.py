"""Exceptions raised inside the avatar subsystem.

AvatarService converts all of these into an AvatarResult before they reach
callers; routes turn failed results into HTTP errors.
"""


class AvatarError(Exception):
    """Base class for avatar errors."""


class AvatarValidationError(AvatarError):
    """Upload rejected locally (type, size, undecodable image). No store call was made."""


class ImageDecodeError(AvatarValidationError):
    pass


class StoreError(AvatarError):
    """The object store rejected or failed a request."""


class BucketNotFoundError(StoreError):
    pass


class CacheNotReadyError(AvatarError):
    """Cache entries were read or written before the initial load finished."""
