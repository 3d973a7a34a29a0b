"""
HTTP adapters

Blob store (cbfs), document store (CouchDB / Sync Gateway REST API) and
plain URL fetching, all over requests.
"""

import logging
from typing import Any, Dict, Optional

import requests
import urllib3

from ..errors import DocumentConflict, FetchFailed, WriteFailed
from ..utils import format_size
from . import BlobStore, DocumentStore, Payload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# Raised by response bodies that break off mid-read
STREAM_ERRORS = (requests.RequestException, urllib3.exceptions.HTTPError)


class BlobStream:
    """
    Body of a streamed blob download

    A dropped connection or a body shorter than its Content-Length raises
    FetchFailed from read().
    """

    def __init__(self, response: requests.Response, path: str):
        self.response = response
        self.path = path
        self.response.raw.decode_content = True

    def read(self, size: int = -1) -> bytes:
        try:
            return self.response.raw.read(size if size is not None and size >= 0 else None)
        except STREAM_ERRORS as e:
            raise FetchFailed(f"Error reading {self.path} from cbfs: {e}", source=self.path) from e

    def close(self):
        self.response.close()


class HttpFetcher:
    """Fetches externally hosted files; only HTTP 200 counts as success"""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, url: str) -> bytes:
        """
        GET a URL and return its body

        Raises:
            FetchFailed: On transport errors or a non-200 response
        """
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchFailed(f"Error doing GET on: {url}. {e}", source=url) from e

        if response.status_code != 200:
            raise FetchFailed(f"{response.status_code} response to GET on: {url}", source=url)

        logger.debug(f"Fetched {format_size(len(response.content))} from {url}")
        return response.content


class CbfsBlobStore(BlobStore):
    """
    Client for a cbfs blob store

    Blobs are addressed as "<base_url>/<path>"; downloads are streamed
    through BlobStream.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def get(self, path: str) -> BlobStream:
        url = self._url(path)
        logger.info(f"Cbfs get {path}")
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchFailed(f"Error getting {path} from cbfs: {e}", source=path) from e

        if response.status_code != 200:
            response.close()
            raise FetchFailed(
                f"{response.status_code} response to GET on: {url}", source=path
            )

        return BlobStream(response, path)

    def put(self, path: str, data: Payload, content_type: str = "application/octet-stream"):
        url = self._url(path)
        try:
            response = self.session.put(
                url,
                data=data,
                headers={"Content-Type": content_type},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise WriteFailed(f"Error writing {path} to cbfs: {e}", source=path) from e

        if response.status_code not in (200, 201, 204):
            raise WriteFailed(
                f"Error writing {path} to cbfs: {response.status_code} {response.text}",
                source=path,
            )
        if isinstance(data, bytes):
            logger.info(f"Wrote {path} to cbfs ({format_size(len(data))})")
        else:
            logger.info(f"Wrote {path} to cbfs")


class CouchDocumentStore(DocumentStore):
    """Revisioned document access over the CouchDB REST API"""

    def __init__(
        self,
        db_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.db_url = db_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def retrieve(self, doc_id: str) -> Dict[str, Any]:
        url = f"{self.db_url}/{doc_id}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchFailed(f"Error fetching document {doc_id}: {e}", source=doc_id) from e

        if response.status_code != 200:
            raise FetchFailed(
                f"{response.status_code} response fetching document {doc_id}", source=doc_id
            )
        try:
            return response.json()
        except ValueError as e:
            raise FetchFailed(f"Document {doc_id} is not valid JSON: {e}", source=doc_id) from e

    def edit(self, doc: Dict[str, Any]) -> str:
        doc_id = doc.get("_id")
        if not doc_id:
            raise WriteFailed("Cannot edit a document without _id")

        url = f"{self.db_url}/{doc_id}"
        try:
            response = self.session.put(url, json=doc, timeout=self.timeout)
        except requests.RequestException as e:
            raise WriteFailed(f"Error saving document {doc_id}: {e}", source=doc_id) from e

        if response.status_code == 409:
            raise DocumentConflict(f"Document update conflict on {doc_id}", source=doc_id)
        if response.status_code not in (200, 201, 202):
            raise WriteFailed(
                f"Error saving document {doc_id}: {response.status_code} {response.text}",
                source=doc_id,
            )
        try:
            return response.json().get("rev", "")
        except ValueError as e:
            raise WriteFailed(
                f"Unreadable response saving document {doc_id}: {e}", source=doc_id
            ) from e
