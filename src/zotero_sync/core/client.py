import logging
import re
import threading
import time
from typing import Any

import requests

from ..config import Config
from ..converters import strip_html
from ..errors import ZoteroApiError
from ..sync.models import TagPushStatus

logger = logging.getLogger(__name__)

API_VERSION = "3"
MAX_RATE_LIMIT_RETRIES = 5
DEFAULT_RETRY_AFTER = 10.0


class ZoteroClient:
    """Blocking client for the Zotero Web API v3.

    Owns pagination, rate limiting (``Backoff`` / ``Retry-After`` / 429)
    and the per-cycle collection name cache.  The sync engine never calls
    this class directly; it goes through
    ``zotero_sync.adapters.remote.ZoteroRemoteLibrary``.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self._collections: dict[str, str] = {}

    @property
    def session(self) -> requests.Session:
        """Session bound to the calling thread."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Zotero-API-Version": API_VERSION,
                "Zotero-API-Key": self.config.api_key,
            }
        )
        return session

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{self.config.library_prefix}{path}"

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Send one API request, honouring server rate limiting.

        Raises:
            ZoteroApiError: For any status >= 400 other than a retried 429.
        """
        attempts = 0
        while True:
            response = self.session.request(
                method,
                self._url(path),
                params=params,
                json=json_body,
                headers=headers,
                timeout=(10, self.config.timeout),
            )

            backoff = response.headers.get("Backoff")
            if backoff:
                logger.info("Zotero asked to back off for %s s", backoff)
                time.sleep(float(backoff))

            if response.status_code == 429 and attempts < MAX_RATE_LIMIT_RETRIES:
                attempts += 1
                retry_after = response.headers.get("Retry-After")
                wait = float(retry_after) if retry_after else DEFAULT_RETRY_AFTER
                logger.warning(
                    "Rate limited on %s %s, retrying in %.0f s (attempt %d)",
                    method,
                    path,
                    wait,
                    attempts,
                )
                time.sleep(wait)
                continue

            if response.status_code >= 400:
                raise ZoteroApiError(
                    response.status_code, response.text or "Unknown error"
                )
            return response

    def _paginate(
        self, path: str, params: dict[str, str]
    ) -> tuple[list[dict], requests.Response]:
        """Fetch every page of a listing endpoint.

        Returns the accumulated entries and the last response, which is a
        304 response when the server reports nothing newer than ``since``.
        """
        limit = self.config.page_limit
        start = 0
        entries: list[dict] = []
        while True:
            page_params = dict(params, limit=str(limit), start=str(start))
            response = self._request("GET", path, params=page_params)
            if response.status_code == 304:
                return entries, response

            page = response.json()
            entries.extend(page)

            total = int(response.headers.get("Total-Results", "0"))
            start += limit
            if start >= total or len(page) < limit:
                return entries, response

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def test_connection(self) -> tuple[bool, str]:
        """Check the API key and library id with a one-item listing."""
        try:
            self._request("GET", "/items", params={"limit": "1"})
        except ZoteroApiError as e:
            if e.status_code == 403:
                return False, "Invalid API key or insufficient permissions."
            return False, f"Unexpected response: {e.status_code}"
        except requests.RequestException as e:
            return False, f"Connection failed: {e}"
        return True, "Connection successful!"

    def fetch_items_by_tag(
        self, tag: str, since: int | None = None
    ) -> tuple[list[dict], int]:
        """
        List every item carrying *tag*, newest-modified first.

        Args:
            tag: Tag filter.
            since: Only return items modified after this library version.

        Returns:
            ``(items, library_version)``.  When the server answers 304 Not
            Modified the list is empty and the version is *since*.
        """
        params = {
            "tag": tag,
            "format": "json",
            "include": "data,bib",
            "sort": "dateModified",
            "direction": "desc",
        }
        if since:
            params["since"] = str(since)

        items, response = self._paginate("/items", params)
        if response.status_code == 304:
            return [], since or 0

        version_header = response.headers.get("Last-Modified-Version")
        library_version = int(version_header) if version_header else 0
        return items, library_version

    def fetch_item(self, item_key: str) -> dict | None:
        """Get one item by key; ``None`` when the key does not exist."""
        try:
            response = self._request(
                "GET",
                f"/items/{item_key}",
                params={"format": "json", "include": "data,bib"},
            )
        except ZoteroApiError as e:
            if e.status_code == 404:
                return None
            raise
        return response.json()

    def fetch_item_children(self, item_key: str) -> list[dict]:
        """Get the direct children (attachments, notes) of an item."""
        response = self._request(
            "GET",
            f"/items/{item_key}/children",
            params={"format": "json", "include": "data"},
        )
        return response.json()

    def fetch_annotations(self, attachment_key: str) -> list[dict]:
        """Get the annotation children of a PDF attachment."""
        return [
            child
            for child in self.fetch_item_children(attachment_key)
            if child.get("data", {}).get("itemType") == "annotation"
        ]

    def fetch_bibliography(self, item_key: str, style: str = "apa") -> str:
        """Get a plain-text formatted citation; ``""`` when unavailable."""
        try:
            response = self._request(
                "GET",
                f"/items/{item_key}",
                params={"format": "json", "include": "bib", "style": style},
            )
        except (ZoteroApiError, requests.RequestException) as e:
            logger.warning("Bibliography unavailable for %s: %s", item_key, e)
            return ""
        bib = response.json().get("bib")
        return clean_bibliography(bib) if bib else ""

    def fetch_annotation_image(self, annotation_key: str) -> bytes | None:
        """Download the rendered PNG of an image annotation, if the server has one."""
        try:
            response = self._request("GET", f"/items/{annotation_key}/file")
        except (ZoteroApiError, requests.RequestException) as e:
            logger.debug("No remote image for %s: %s", annotation_key, e)
            return None
        if response.status_code != 200:
            return None
        return response.content

    def patch_item_tags(
        self, item_key: str, tags: list[str], version: int
    ) -> TagPushStatus:
        """
        Replace an item's tag list, guarded by the item version.

        A version mismatch (409/412) or a read-only key (403) is reported
        through the returned status and never raised.
        """
        body = {"tags": [{"tag": t} for t in tags]}
        try:
            self._request(
                "PATCH",
                f"/items/{item_key}",
                json_body=body,
                headers={"If-Unmodified-Since-Version": str(version)},
            )
        except ZoteroApiError as e:
            if e.status_code in (409, 412):
                return TagPushStatus.CONFLICT
            if e.status_code == 403:
                return TagPushStatus.FORBIDDEN
            logger.error("Failed to patch tags for %s: %s", item_key, e)
            return TagPushStatus.ERROR
        except requests.RequestException as e:
            logger.error("Failed to patch tags for %s: %s", item_key, e)
            return TagPushStatus.ERROR
        return TagPushStatus.SUCCESS

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def fetch_collections(self) -> dict[str, str]:
        """Load collection key to name, once per cache lifetime."""
        if self._collections:
            return self._collections

        collections, _ = self._paginate("/collections", {"format": "json"})
        self._collections = {
            c["key"]: c.get("data", {}).get("name", "") for c in collections
        }
        return self._collections

    def get_collection_name(self, key: str) -> str | None:
        return self._collections.get(key)

    def clear_collection_cache(self) -> None:
        self._collections = {}


_LEADING_NUMBER = re.compile(r"^\d+\.\s*")
_WHITESPACE = re.compile(r"\s+")


def clean_bibliography(bib: str) -> str:
    """Strip markup, list numbering and excess whitespace from a citation.

    Markup goes through the lxml converter so entities come out decoded.
    """
    cleaned = _LEADING_NUMBER.sub("", strip_html(bib))
    return _WHITESPACE.sub(" ", cleaned).strip()
