from __future__ import annotations


class FeedServiceError(Exception):
    """Base class for unexpected feed subsystem failures."""

    def __init__(self, message: str, *, slug: str | None = None) -> None:
        super().__init__(message)
        self.slug = slug


class RepositoryError(FeedServiceError):
    """The show/episode data store failed to answer a query."""


class FeedIndexBuildingError(FeedServiceError):
    """Raised when Firestore requires a composite index that is still building."""

    def __init__(self, hint: str | None = None, *, slug: str | None = None) -> None:
        super().__init__("Firestore index is building", slug=slug)
        self.hint = hint


class ShowNotFoundError(Exception):
    """No servable show exists for the requested slug."""

    def __init__(self, slug: str) -> None:
        super().__init__("Show not found")
        self.slug = slug


class InvalidSlugError(ValueError):
    """The requested show slug was rejected before lookup."""


__all__ = [
    "FeedServiceError",
    "RepositoryError",
    "FeedIndexBuildingError",
    "ShowNotFoundError",
    "InvalidSlugError",
]
