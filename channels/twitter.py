"""
Twitter channel. Standard v1.1 search and user lookup, app-only auth.

Cursor family: id watermark. The cursor is the highest tweet id seen
(search_metadata.max_id_str) and is sent back as since_id. Only the first
page of a chain reports a cursor: later pages walk backwards with max_id,
so their max id is lower and must never replace the watermark.
"""

import re
import threading
from datetime import datetime
from urllib.parse import parse_qs, urlparse

import requests

from channels.base import ChannelAdapter, ChannelError, ParseError, TransportError
from models import (
    Author,
    ContentType,
    FetchResult,
    MediaFilter,
    QueryKind,
    SingleEntity,
    classify_query,
)

SITE_URL = "https://twitter.com/"
API_URL = "https://api.twitter.com/1.1"
TOKEN_URL = "https://api.twitter.com/oauth2/token"

RETWEET = re.compile(r"^RT @", re.IGNORECASE)


def _parse_created_at(value) -> datetime | None:
    """Twitter dates look like 'Wed Oct 10 20:19:24 +0000 2018'. None if unparseable."""
    try:
        return datetime.strptime(value, "%a %b %d %H:%M:%S %z %Y")
    except (TypeError, ValueError):
        return None


class TwitterChannel(ChannelAdapter):
    PAGE_SIZE = 100   # API max
    # Search returns statuses only; there is no video-only equivalent.
    SUPPORTED_MEDIA = frozenset({MediaFilter.IMAGES, MediaFilter.TEXT, MediaFilter.ALL})

    def __init__(self, app_id=None, app_secret=None, app_token=None, params=None, timeout=15.0, logger=None):
        super().__init__(app_id, app_secret, app_token, params, timeout, logger)
        if not self._app_token and not (self._app_id and self._app_secret):
            raise ChannelError("twitter needs a bearer token, or an app id and secret")
        self._bearer = self._app_token
        self._bearer_lock = threading.Lock()

    def name(self) -> str:
        return "twitter"

    def _authorize(self) -> dict:
        """Exchange the app credentials for a bearer token, once."""
        with self._bearer_lock:
            if not self._bearer:
                try:
                    resp = self._session.post(
                        TOKEN_URL,
                        auth=(self._app_id, self._app_secret),
                        data={"grant_type": "client_credentials"},
                        timeout=self._timeout,
                    )
                except requests.RequestException as e:
                    raise TransportError(f"token exchange failed: {e}") from e
                if resp.status_code != 200:
                    raise TransportError(f"token exchange failed: HTTP {resp.status_code}")
                try:
                    data = resp.json()
                except ValueError as e:
                    raise ParseError("token exchange returned a body that is not JSON") from e
                if not isinstance(data, dict) or not data.get("access_token"):
                    raise ParseError("token exchange returned no access_token")
                self._bearer = data["access_token"]
                self.log.debug("Obtained app-only bearer token")
        return {"Authorization": f"Bearer {self._bearer}"}

    def _fetch(self, query, media, cursor, include_raw, page_token) -> FetchResult:
        kind, value = classify_query(query)
        headers = self._authorize()

        if kind is QueryKind.USER:
            data = self._get_json(
                f"{API_URL}/users/show.json",
                params={"screen_name": value, "include_entities": "false"},
                headers=headers,
            )
            return FetchResult(entity=self._parse_user(data, include_raw))

        params = {
            "q": f"from:@{value}" if kind is QueryKind.FROM else value,
            "result_type": "recent",
            "count": self.PAGE_SIZE,
        }
        if cursor:
            params["since_id"] = cursor
        if page_token:
            params["max_id"] = page_token

        data = self._get_json(f"{API_URL}/search/tweets.json", params=params, headers=headers)
        return self._parse_search(data, media, include_raw, first_page=page_token is None)

    def _parse_search(self, data: dict, media: MediaFilter, include_raw: bool, first_page: bool) -> FetchResult:
        statuses = data.get("statuses") or []
        metadata = data.get("search_metadata") or {}

        items = []
        for entry in statuses:
            if RETWEET.match(entry.get("text", "")):
                continue

            attachment = self._match_media(entry, media)
            if attachment is None:
                continue

            created_at = _parse_created_at(entry.get("created_at"))
            if created_at is None:
                self.log.debug(f"Skipping tweet {entry.get('id_str')} with bad date {entry.get('created_at')!r}")
                continue

            user = entry.get("user") or {}
            item = self._make_item(
                attachment,
                id=entry.get("id_str", ""),
                created_at=created_at,
                description=entry.get("text", ""),
                link=f"{SITE_URL}{user.get('screen_name', '')}/status/{entry.get('id_str', '')}",
                author=Author(
                    id=user.get("id_str", ""),
                    avatar=user.get("profile_image_url_https", "").replace("_normal", ""),
                    fullname=user.get("name", ""),
                    username=user.get("screen_name", ""),
                ),
                raw=entry if include_raw else None,
            )
            if item:
                items.append(item)

        return FetchResult(
            items=tuple(items),
            new_cursor=metadata.get("max_id_str") if first_page else None,
            original_count=len(statuses),
            next_token=self._next_max_id(metadata),
        )

    @staticmethod
    def _next_max_id(metadata: dict) -> str | None:
        """next_results is a query string like '?max_id=123&q=...'."""
        next_results = metadata.get("next_results")
        if not next_results:
            return None
        max_id = parse_qs(urlparse(next_results).query).get("max_id")
        return max_id[0] if max_id else None

    def _parse_image(self, entry: dict) -> dict | None:
        # TODO: handle every media attachment, not only the first one
        media = (entry.get("entities") or {}).get("media") or []
        if media and media[0].get("type") == "photo":
            url = media[0].get("media_url", "")
            return {
                "source": f"{url}:large",
                "thumb": f"{url}:small",
                "type": ContentType.IMAGE,
            }
        return None

    @staticmethod
    def _parse_user(data: dict, include_raw: bool) -> SingleEntity | None:
        if not data.get("id_str"):
            return None
        return SingleEntity(
            id=data["id_str"],
            fullname=data.get("name", ""),
            username=data.get("screen_name", ""),
            avatar=data.get("profile_image_url", ""),
            raw=data if include_raw else None,
        )
