"""Read-only client for the YouTube Data API v3."""

from __future__ import annotations

import logging
from typing import Any, Dict, Literal, Mapping, Optional, Sequence

import httpx
from pydantic import BaseModel, Field

from .config import YOUTUBE_API_BASE
from .errors import CapabilityUnsupported, UpstreamError

logger = logging.getLogger("tubedesk.youtube")

VIDEO_PARTS = "snippet,contentDetails,statistics,status"

# Enumerated filters the API treats "any" as "no filter" for.
_ANY_FILTERS = (
    "videoDuration",
    "videoDefinition",
    "videoDimension",
    "videoEmbeddable",
    "videoLicense",
    "videoSyndicated",
    "videoType",
)
_PLAIN_FILTERS = (
    "q",
    "type",
    "order",
    "publishedAfter",
    "publishedBefore",
    "videoCategoryId",
    "regionCode",
    "relevanceLanguage",
    "safeSearch",
    "pageToken",
)


class SearchParams(BaseModel):
    q: Optional[str] = None
    type: Optional[Literal["video", "channel", "playlist"]] = None
    order: Optional[Literal["date", "rating", "relevance", "title", "videoCount", "viewCount"]] = None
    publishedAfter: Optional[str] = None
    publishedBefore: Optional[str] = None
    videoDuration: Optional[Literal["short", "medium", "long", "any"]] = None
    videoDefinition: Optional[Literal["high", "standard", "any"]] = None
    videoDimension: Optional[Literal["2d", "3d", "any"]] = None
    videoEmbeddable: Optional[Literal["true", "any"]] = None
    videoLicense: Optional[Literal["creativeCommon", "youtube", "any"]] = None
    videoSyndicated: Optional[Literal["true", "any"]] = None
    videoType: Optional[Literal["episode", "movie", "any"]] = None
    videoCategoryId: Optional[str] = None
    regionCode: Optional[str] = None
    relevanceLanguage: Optional[str] = None
    safeSearch: Optional[Literal["moderate", "none", "strict"]] = None
    maxResults: Optional[int] = Field(default=None, ge=0, le=50)
    pageToken: Optional[str] = None


def build_search_params(params: SearchParams) -> Dict[str, Any]:
    """Translate :class:`SearchParams` into the query the ``/search`` endpoint expects."""

    query: Dict[str, Any] = {"part": "snippet", "maxResults": params.maxResults or 50}
    for name in _PLAIN_FILTERS:
        value = getattr(params, name)
        if value:
            query[name] = value
    for name in _ANY_FILTERS:
        value = getattr(params, name)
        if value and value != "any":
            query[name] = value
    return query


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message.strip():
                return message.strip()
        elif isinstance(error, str) and error.strip():
            return error.strip()
    return default


# Write operations an API key cannot authorise, keyed by client method name.
MUTATING_OPERATIONS: Dict[str, str] = {
    "update_video": "Video update",
    "delete_video": "Video deletion",
    "rate_video": "Video rating",
    "create_playlist": "Playlist creation",
    "update_playlist": "Playlist update",
    "delete_playlist": "Playlist deletion",
    "add_video_to_playlist": "Adding video to playlist",
    "remove_video_from_playlist": "Removing video from playlist",
    "create_comment": "Comment creation",
    "reply_to_comment": "Comment reply",
    "update_comment": "Comment update",
    "delete_comment": "Comment deletion",
    "subscribe_to_channel": "Channel subscription",
    "unsubscribe_from_channel": "Channel unsubscription",
}


def unsupported(operation: str) -> CapabilityUnsupported:
    label = MUTATING_OPERATIONS[operation]
    return CapabilityUnsupported(f"{label} requires higher privilege (OAuth2 authorization)")


class YouTubeClient:
    """Forward typed queries to the YouTube Data API using a single API key."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = YOUTUBE_API_BASE,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        cleaned = (api_key or "").strip()
        if not cleaned:
            raise ValueError("API key must not be empty when using YouTubeClient")
        self._api_key = cleaned
        self._base_url = base_url.strip().rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    async def _request(self, endpoint: str, params: Mapping[str, Any]) -> Any:
        query = {key: value for key, value in params.items() if value is not None}
        query["key"] = self._api_key
        url = f"{self._base_url}{endpoint}"

        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, params=query, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=query)
        except httpx.RequestError as exc:
            raise UpstreamError(f"YouTube API Error: {exc}") from exc

        if response.status_code >= 400:
            try:
                parsed = response.json()
            except ValueError:
                parsed = None
            default = f"Request failed with status code {response.status_code}"
            message = _extract_error_message(parsed, default)
            logger.debug("YouTube %s returned %s: %s", endpoint, response.status_code, message)
            raise UpstreamError(f"YouTube API Error: {message}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("YouTube API Error: upstream returned an invalid response") from exc

    # Search
    async def search(self, params: SearchParams) -> Any:
        return await self._request("/search", build_search_params(params))

    # Videos
    async def get_video(self, video_id: str) -> Any:
        return await self._request("/videos", {"part": VIDEO_PARTS, "id": video_id})

    async def get_videos(self, video_ids: Sequence[str]) -> Any:
        return await self._request("/videos", {"part": VIDEO_PARTS, "id": ",".join(video_ids)})

    async def get_most_popular_videos(self, region_code: Optional[str] = "US", max_results: Optional[int] = 25) -> Any:
        return await self._request(
            "/videos",
            {
                "part": "snippet,contentDetails,statistics",
                "chart": "mostPopular",
                "regionCode": region_code or "US",
                "maxResults": max_results or 25,
            },
        )

    async def update_video(self, video_id: str, snippet: Any = None, status: Any = None) -> Any:
        raise unsupported("update_video")

    async def delete_video(self, video_id: str) -> Any:
        raise unsupported("delete_video")

    async def rate_video(self, video_id: str, rating: str) -> Any:
        raise unsupported("rate_video")

    # Channels
    async def get_channel(self, channel_id: str) -> Any:
        return await self._request(
            "/channels",
            {"part": "snippet,contentDetails,statistics,brandingSettings", "id": channel_id},
        )

    async def get_channels_by_username(self, username: str) -> Any:
        return await self._request(
            "/channels",
            {"part": "snippet,contentDetails,statistics", "forUsername": username},
        )

    async def search_channel_videos(
        self,
        channel_id: str,
        max_results: Optional[int] = 12,
        page_token: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "/search",
            {
                "part": "snippet",
                "type": "video",
                "channelId": channel_id,
                "maxResults": max_results or 12,
                "order": "date",
                "pageToken": page_token or None,
            },
        )

    # Playlists
    async def get_playlist(self, playlist_id: str) -> Any:
        return await self._request("/playlists", {"part": "snippet,contentDetails,status", "id": playlist_id})

    async def get_playlist_items(
        self,
        playlist_id: str,
        max_results: Optional[int] = 50,
        page_token: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "/playlistItems",
            {
                "part": "snippet,contentDetails",
                "playlistId": playlist_id,
                "maxResults": max_results or 50,
                "pageToken": page_token or None,
            },
        )

    async def create_playlist(self, title: str, description: str = "", privacy_status: str = "private") -> Any:
        raise unsupported("create_playlist")

    async def update_playlist(self, playlist_id: str, title: str = "", description: str = "", privacy_status: str = "") -> Any:
        raise unsupported("update_playlist")

    async def delete_playlist(self, playlist_id: str) -> Any:
        raise unsupported("delete_playlist")

    async def add_video_to_playlist(self, playlist_id: str, video_id: str) -> Any:
        raise unsupported("add_video_to_playlist")

    async def remove_video_from_playlist(self, playlist_item_id: str) -> Any:
        raise unsupported("remove_video_from_playlist")

    # Comments
    async def get_video_comments(
        self,
        video_id: str,
        max_results: Optional[int] = 100,
        page_token: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "/commentThreads",
            {
                "part": "snippet,replies",
                "videoId": video_id,
                "maxResults": max_results or 100,
                "pageToken": page_token or None,
                "textFormat": "plainText",
            },
        )

    async def get_comment_replies(
        self,
        parent_id: str,
        max_results: Optional[int] = 100,
        page_token: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "/comments",
            {
                "part": "snippet",
                "parentId": parent_id,
                "maxResults": max_results or 100,
                "pageToken": page_token or None,
                "textFormat": "plainText",
            },
        )

    async def create_comment(self, channel_id: str, video_id: str, text: str) -> Any:
        raise unsupported("create_comment")

    async def reply_to_comment(self, parent_id: str, text: str) -> Any:
        raise unsupported("reply_to_comment")

    async def update_comment(self, comment_id: str, text: str) -> Any:
        raise unsupported("update_comment")

    async def delete_comment(self, comment_id: str) -> Any:
        raise unsupported("delete_comment")

    # Subscriptions
    async def get_subscriptions(
        self,
        channel_id: str,
        max_results: Optional[int] = 50,
        page_token: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "/subscriptions",
            {
                "part": "snippet,contentDetails",
                "channelId": channel_id,
                "maxResults": max_results or 50,
                "pageToken": page_token or None,
            },
        )

    async def subscribe_to_channel(self, channel_id: str) -> Any:
        raise unsupported("subscribe_to_channel")

    async def unsubscribe_from_channel(self, subscription_id: str) -> Any:
        raise unsupported("unsubscribe_from_channel")

    async def validate_api_key(self) -> bool:
        """Run a one-result search; any failure means the key is rejected."""

        try:
            await self._request("/search", {"part": "snippet", "q": "test", "maxResults": 1})
        except UpstreamError as exc:
            logger.info("YouTube API key validation failed: %s", exc)
            return False
        return True


__all__ = [
    "MUTATING_OPERATIONS",
    "SearchParams",
    "VIDEO_PARTS",
    "YouTubeClient",
    "build_search_params",
    "unsupported",
]
