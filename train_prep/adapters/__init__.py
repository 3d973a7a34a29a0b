#!/usr/bin/env python3
"""
Storage and transport adapters for Train Prep

This module contains the collaborator interfaces the preparation pipeline
talks to: a blob store holding configurations and dataset archives, a
document store holding solver records, and an HTTP fetcher for externally
hosted configuration files. Each interface has a local filesystem
implementation here and an HTTP implementation in adapters.http.
"""

import json
import logging
import shutil
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, BinaryIO, Dict, Union

from ..errors import DocumentConflict, FetchFailed, WriteFailed

logger = logging.getLogger(__name__)

Payload = Union[bytes, BinaryIO]


class BlobStore(ABC):
    """
    Abstract base class for path-addressable blob stores.
    Paths are namespaced "<entity-id>/<filename>".
    """

    @abstractmethod
    def get(self, path: str) -> BinaryIO:
        """Open a binary read stream; raises FetchFailed when unavailable"""
        pass

    @abstractmethod
    def put(self, path: str, data: Payload, content_type: str = "application/octet-stream"):
        """Store bytes or a binary stream at path; raises WriteFailed"""
        pass


class DocumentStore(ABC):
    """
    Abstract base class for revisioned JSON document stores.
    Edits must carry the current "_rev" or fail with DocumentConflict.
    """

    @abstractmethod
    def retrieve(self, doc_id: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def edit(self, doc: Dict[str, Any]) -> str:
        """Store doc over its current revision and return the new revision"""
        pass


class LocalBlobStore(BlobStore):
    """Blob store backed by a local directory"""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def get(self, path: str) -> BinaryIO:
        try:
            return open(self._path(path), "rb")
        except OSError as e:
            raise FetchFailed(f"Blob not found: {path} ({e})", source=path) from e

    def put(self, path: str, data: Payload, content_type: str = "application/octet-stream"):
        target = self._path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                if isinstance(data, (bytes, bytearray)):
                    f.write(data)
                else:
                    shutil.copyfileobj(data, f)
        except OSError as e:
            raise WriteFailed(f"Error writing {path} to blob store: {e}", source=path) from e
        logger.info(f"Wrote {path} to local blob store ({content_type})")


class LocalDocumentStore(DocumentStore):
    """
    JSON-file document store with CouchDB-style revisions

    Each document lives in "<root>/<id>.json"; revisions look like
    "<generation>-<random hex>".
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, doc_id: str) -> Path:
        return self.root / f"{doc_id}.json"

    def retrieve(self, doc_id: str) -> Dict[str, Any]:
        try:
            with open(self._path(doc_id), "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise FetchFailed(f"Error fetching document {doc_id}: {e}", source=doc_id) from e

    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc = dict(doc)
        doc.setdefault("_id", uuid.uuid4().hex)
        doc.pop("_rev", None)
        if self._path(doc["_id"]).exists():
            raise DocumentConflict(f"Document {doc['_id']} already exists", source=doc["_id"])
        doc["_rev"] = self._write(doc, 1)
        return doc

    def edit(self, doc: Dict[str, Any]) -> str:
        doc_id = doc.get("_id")
        if not doc_id:
            raise WriteFailed("Cannot edit a document without _id")
        current = self.retrieve(doc_id)
        if current.get("_rev") != doc.get("_rev"):
            raise DocumentConflict(
                f"Document update conflict on {doc_id}: "
                f"{doc.get('_rev')} is not the current revision {current.get('_rev')}",
                source=doc_id,
            )
        generation = int(str(current["_rev"]).split("-", 1)[0]) + 1
        return self._write(dict(doc), generation)

    def _write(self, doc: Dict[str, Any], generation: int) -> str:
        doc["_rev"] = f"{generation}-{uuid.uuid4().hex}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(self._path(doc["_id"]), "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
        except OSError as e:
            raise WriteFailed(f"Error writing document {doc['_id']}: {e}", source=doc["_id"]) from e
        return doc["_rev"]


def create_blob_store(store_config) -> BlobStore:
    """
    Factory function to get the blob store selected by a StoreConfig

    Args:
        store_config: StoreConfig with backend "cbfs" or "local"

    Returns:
        BlobStore instance
    """
    backend = store_config.backend
    if backend == "local":
        logger.info(f"Using local blob store at {store_config.local_root}")
        return LocalBlobStore(store_config.local_root)
    if backend == "cbfs":
        from .http import CbfsBlobStore

        logger.info(f"Using cbfs blob store at {store_config.blob_store_url}")
        return CbfsBlobStore(store_config.blob_store_url, timeout=store_config.timeout)
    raise ValueError(f"Unknown store backend: {store_config.backend}")


def create_document_store(store_config) -> DocumentStore:
    """Factory function to get the document store selected by a StoreConfig"""
    backend = store_config.backend
    if backend == "local":
        return LocalDocumentStore(Path(store_config.local_root) / "_documents")
    if backend == "cbfs":
        from .http import CouchDocumentStore

        return CouchDocumentStore(store_config.db_url, timeout=store_config.timeout)
    raise ValueError(f"Unknown store backend: {store_config.backend}")


__all__ = [
    "BlobStore",
    "DocumentStore",
    "LocalBlobStore",
    "LocalDocumentStore",
    "create_blob_store",
    "create_document_store",
]
