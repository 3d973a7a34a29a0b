"""
Blob reference resolution

Translates opaque blob store references ("cbfs://<path>") into the relative
paths understood by blob store clients, and back.
"""

import logging

from ..errors import InvalidReference

logger = logging.getLogger(__name__)

CBFS_URI_PREFIX = "cbfs://"


class BlobReferenceResolver:
    """Pure string transforms between blob references and store paths"""

    def __init__(self, prefix: str = CBFS_URI_PREFIX):
        if not prefix:
            raise ValueError("Reference prefix must not be empty")
        self.prefix = prefix

    def is_reference(self, ref: str) -> bool:
        return isinstance(ref, str) and ref.startswith(self.prefix)

    def to_relative_path(self, ref: str) -> str:
        """
        Strip the scheme prefix from a reference

        The remainder is returned verbatim: no normalization of ".." or empty
        segments is applied, so the input must come from a trusted record.

        Args:
            ref: Blob reference, eg "cbfs://foo/bar.txt"

        Returns:
            Relative store path, eg "foo/bar.txt"

        Raises:
            InvalidReference: If ref does not start with the prefix
        """
        if not self.is_reference(ref):
            raise InvalidReference(
                f"Expected {ref!r} to start with {self.prefix}", source=ref
            )
        return ref[len(self.prefix):]

    def to_reference(self, path: str) -> str:
        """Prepend the scheme prefix to a relative store path"""
        return f"{self.prefix}{path}"


_default_resolver = BlobReferenceResolver()


def to_relative_path(ref: str) -> str:
    return _default_resolver.to_relative_path(ref)


def to_reference(path: str) -> str:
    return _default_resolver.to_reference(path)
