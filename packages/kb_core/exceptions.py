"""Custom exceptions for the knowledge base."""


class KnowledgeBaseError(Exception):
    """Base class for knowledge base errors."""

    pass


class BuildError(KnowledgeBaseError):
    """Raised when a store build fails; nothing from the failed build is visible."""

    pass


class InvalidArgumentError(KnowledgeBaseError):
    """Raised when a request cannot be served with the arguments given."""

    pass


class StoreNotFoundError(KnowledgeBaseError):
    """Raised when opening a store that has not been built."""

    pass
