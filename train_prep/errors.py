"""
Error kinds for Train Prep

Every failure raised by the preparation pipeline derives from PrepError and
carries the reference, URL or path it concerns so callers can log and retry
at a higher level.
"""

from typing import List, Optional


class PrepError(Exception):
    """Base exception for job preparation errors."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class InvalidReference(PrepError):
    """Raised when a blob reference lacks the expected scheme prefix."""
    pass


class ConfigParseError(PrepError):
    """Raised when configuration text violates the text-format grammar."""

    def __init__(
        self,
        message: str,
        line: int = 0,
        column: int = 0,
        source: Optional[str] = None,
    ):
        location = f"line {line}, column {column}: " if line else ""
        super().__init__(f"{location}{message}", source=source)
        self.line = line
        self.column = column


class FetchFailed(PrepError):
    """Raised when a network or blob store read fails."""
    pass


class ExtractionFailed(PrepError):
    """Raised when an archive stream is corrupt or unsupported."""
    pass


class WriteFailed(PrepError):
    """Raised when local or remote persistence fails."""
    pass


class DocumentConflict(PrepError):
    """Raised by a document store when an edit carries a stale revision."""
    pass


class LabelVocabularyMismatch(PrepError):
    """Raised when the test split's labels differ from the training split's."""

    def __init__(
        self,
        training_labels: List[str],
        testing_labels: List[str],
        source: Optional[str] = None,
    ):
        missing = [label for label in training_labels if label not in testing_labels]
        extra = [label for label in testing_labels if label not in training_labels]
        super().__init__(
            f"Label vocabulary mismatch between splits "
            f"(missing in test: {missing}, only in test: {extra}, "
            f"order equal: {training_labels == testing_labels})",
            source=source,
        )
        self.training_labels = training_labels
        self.testing_labels = testing_labels
