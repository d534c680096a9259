"""HTTP API for the Telegram Mini-App: sign-in, stored keys, preferences and the YouTube proxy."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional

import anyio
import httpx
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import AppConfig
from .database import Database
from .errors import (
    AuthenticationRejected,
    CapabilityUnsupported,
    StorageUnavailable,
    TubedeskError,
    UpstreamError,
    ValidationFailed,
)
from .models import DEFAULT_LANGUAGE, Language, User
from .security import INIT_DATA_HEADER, Authenticator, build_authenticator, client_api_key
from .sessions import SessionTokens
from .telegram import authenticate_telegram_user
from .youtube import SearchParams, YouTubeClient, unsupported

logger = logging.getLogger("tubedesk.api")

NO_API_KEY_MESSAGE = "No active YouTube API key found"
INVALID_API_KEY_MESSAGE = "Invalid YouTube API key"

YouTubeClientFactory = Callable[[str], YouTubeClient]


class UserView(BaseModel):
    id: int
    external_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    login_method: Optional[str] = None
    role: str
    last_signed_in: datetime
    created_at: datetime
    updated_at: datetime


class TelegramLoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    init_data: Optional[str] = Field(default=None, alias="initData")


class TelegramLoginResponse(BaseModel):
    success: bool = True
    user: UserView


class ApiKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(..., min_length=1, alias="apiKey")


class LanguageRequest(BaseModel):
    language: Language


def _user_to_view(user: User) -> UserView:
    return UserView(
        id=user.id,
        external_id=user.external_id,
        name=user.name,
        email=user.email,
        login_method=user.login_method,
        role=user.role,
        last_signed_in=user.last_signed_in,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _http_error(exc: TubedeskError) -> HTTPException:
    """Translate a tubedesk error into the HTTP response the client sees."""

    if isinstance(exc, AuthenticationRejected):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    if isinstance(exc, CapabilityUnsupported):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
    if isinstance(exc, ValidationFailed):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)
    if isinstance(exc, StorageUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)


def _parse_ids(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def create_app(
    *,
    config: AppConfig,
    database: Database,
    sessions: Optional[SessionTokens] = None,
    authenticator: Optional[Authenticator] = None,
    youtube_client_factory: Optional[YouTubeClientFactory] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Create the FastAPI application serving the Mini-App backend."""

    sessions = sessions or SessionTokens(config.session_secret, ttl=config.session_ttl)
    authenticator = authenticator or build_authenticator(database, sessions, config)

    if youtube_client_factory is None:

        def youtube_client_factory(api_key: str) -> YouTubeClient:
            return YouTubeClient(
                api_key,
                base_url=config.youtube_base_url,
                http_client=http_client,
                timeout=config.youtube_timeout,
            )

    if not config.secure_cookies:
        logger.warning("Session cookies are not marked Secure; only use this for local development")

    app = FastAPI(title="tubedesk", docs_url=None, redoc_url=None)
    app.state.config = config
    app.state.database = database
    app.state.sessions = sessions
    app.state.youtube_client_factory = youtube_client_factory

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
        logger.error("Storage unavailable while serving %s: %s", request.url.path, exc)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": exc.message})

    register_auth_routes(app, config=config, database=database, sessions=sessions, authenticator=authenticator)
    register_youtube_routes(app, database=database, authenticator=authenticator)
    register_preference_routes(app, database=database, authenticator=authenticator)

    return app


def register_auth_routes(
    app: FastAPI,
    *,
    config: AppConfig,
    database: Database,
    sessions: SessionTokens,
    authenticator: Authenticator,
) -> None:
    cookie_domain = config.cookie_domain if config.is_production else None
    # Browsers drop SameSite=None cookies that are not Secure.
    same_site: Literal["none", "lax"] = "none" if config.secure_cookies else "lax"

    def _issue_session_cookie(response: Response, token: str) -> None:
        response.set_cookie(
            config.session_cookie_name,
            token,
            max_age=sessions.cookie_max_age,
            secure=config.secure_cookies,
            httponly=True,
            samesite=same_site,
            path="/",
            domain=cookie_domain,
        )

    def _clear_session_cookie(response: Response) -> None:
        response.delete_cookie(
            config.session_cookie_name,
            path="/",
            domain=cookie_domain,
            secure=config.secure_cookies,
            httponly=True,
            samesite=same_site,
        )

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/auth/telegram", response_model=TelegramLoginResponse)
    async def telegram_login(
        request: Request,
        response: Response,
        payload: Optional[TelegramLoginRequest] = Body(default=None),
    ) -> TelegramLoginResponse:
        init_data = request.headers.get(INIT_DATA_HEADER) or (payload.init_data if payload else None)
        if not init_data:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="initData is required")

        try:
            user = await anyio.to_thread.run_sync(
                lambda: authenticate_telegram_user(
                    database,
                    init_data,
                    config.bot_token,
                    max_age=config.init_data_max_age,
                )
            )
        except AuthenticationRejected as exc:
            logger.info("Telegram sign-in rejected: %s", exc)
            raise _http_error(exc) from exc
        except (ValidationFailed, StorageUnavailable) as exc:
            raise _http_error(exc) from exc

        token = sessions.issue(user.external_id, config.app_id, user.name or user.external_id)
        _issue_session_cookie(response, token)
        logger.info("User %s signed in via Telegram", user.external_id)
        return TelegramLoginResponse(user=_user_to_view(user))

    @app.get("/auth/me", response_model=Optional[UserView])
    async def current_user(request: Request) -> Optional[UserView]:
        user = await authenticator.resolve(request)
        return _user_to_view(user) if user is not None else None

    @app.post("/auth/logout")
    async def logout(response: Response) -> Dict[str, bool]:
        _clear_session_cookie(response)
        return {"success": True}


def register_youtube_routes(app: FastAPI, *, database: Database, authenticator: Authenticator) -> None:
    """Expose the API-key management and read-only YouTube proxy endpoints."""

    def _client(api_key: str) -> YouTubeClient:
        return app.state.youtube_client_factory(api_key)

    async def _resolve_api_key(request: Request, user: User) -> str:
        try:
            stored = await anyio.to_thread.run_sync(database.get_active_api_key, user.id)
        except (ValueError, RuntimeError) as exc:
            logger.warning("Stored API key for user %s could not be decrypted: %s", user.id, exc)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Stored YouTube API key could not be decrypted",
            ) from exc
        api_key = stored or client_api_key(request)
        if not api_key:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NO_API_KEY_MESSAGE)
        return api_key

    async def youtube_client(request: Request, user: User = Depends(authenticator)) -> YouTubeClient:
        return _client(await _resolve_api_key(request, user))

    async def _proxy(call: Callable[[], Any]) -> Any:
        try:
            return await call()
        except TubedeskError as exc:
            raise _http_error(exc) from exc

    @app.get("/youtube/api-key")
    async def api_key_status(user: User = Depends(authenticator)) -> Dict[str, bool]:
        has_key = await anyio.to_thread.run_sync(database.has_active_api_key, user.id)
        return {"hasKey": has_key}

    @app.put("/youtube/api-key")
    async def save_api_key(request: ApiKeyRequest, user: User = Depends(authenticator)) -> Dict[str, bool]:
        api_key = request.api_key.strip()
        if not api_key:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_API_KEY_MESSAGE)

        if not await _client(api_key).validate_api_key():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_API_KEY_MESSAGE)

        try:
            await anyio.to_thread.run_sync(database.save_api_key, user.id, api_key)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except StorageUnavailable as exc:
            raise _http_error(exc) from exc

        logger.info("Stored a new YouTube API key for user %s", user.id)
        return {"success": True}

    @app.delete("/youtube/api-key")
    async def delete_api_key(user: User = Depends(authenticator)) -> Dict[str, bool]:
        try:
            removed = await anyio.to_thread.run_sync(database.deactivate_api_keys, user.id)
        except StorageUnavailable as exc:
            raise _http_error(exc) from exc
        logger.info("Deactivated %s YouTube API key(s) for user %s", removed, user.id)
        return {"success": True}

    @app.get("/youtube/search")
    async def search(
        params: SearchParams = Depends(),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        return await _proxy(lambda: client.search(params))

    @app.get("/youtube/videos/popular")
    async def popular_videos(
        region_code: Optional[str] = Query(default="US", alias="regionCode"),
        max_results: Optional[int] = Query(default=25, ge=1, le=50, alias="maxResults"),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        return await _proxy(lambda: client.get_most_popular_videos(region_code, max_results))

    @app.get("/youtube/videos")
    async def videos(
        ids: str = Query(..., min_length=1),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        video_ids = _parse_ids(ids)
        if not video_ids:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one video id is required")
        return await _proxy(lambda: client.get_videos(video_ids))

    @app.get("/youtube/videos/{video_id}")
    async def video(video_id: str, client: YouTubeClient = Depends(youtube_client)) -> Any:
        return await _proxy(lambda: client.get_video(video_id))

    @app.get("/youtube/videos/{video_id}/comments")
    async def video_comments(
        video_id: str,
        max_results: Optional[int] = Query(default=100, ge=1, le=100, alias="maxResults"),
        page_token: Optional[str] = Query(default=None, alias="pageToken"),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        return await _proxy(lambda: client.get_video_comments(video_id, max_results, page_token))

    @app.get("/youtube/comments/{parent_id}/replies")
    async def comment_replies(
        parent_id: str,
        max_results: Optional[int] = Query(default=100, ge=1, le=100, alias="maxResults"),
        page_token: Optional[str] = Query(default=None, alias="pageToken"),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        return await _proxy(lambda: client.get_comment_replies(parent_id, max_results, page_token))

    @app.get("/youtube/channels/by-username/{username}")
    async def channels_by_username(username: str, client: YouTubeClient = Depends(youtube_client)) -> Any:
        return await _proxy(lambda: client.get_channels_by_username(username))

    @app.get("/youtube/channels/{channel_id}")
    async def channel(channel_id: str, client: YouTubeClient = Depends(youtube_client)) -> Any:
        return await _proxy(lambda: client.get_channel(channel_id))

    @app.get("/youtube/channels/{channel_id}/videos")
    async def channel_videos(
        channel_id: str,
        max_results: Optional[int] = Query(default=12, ge=1, le=50, alias="maxResults"),
        page_token: Optional[str] = Query(default=None, alias="pageToken"),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        return await _proxy(lambda: client.search_channel_videos(channel_id, max_results, page_token))

    @app.get("/youtube/channels/{channel_id}/subscriptions")
    async def subscriptions(
        channel_id: str,
        max_results: Optional[int] = Query(default=50, ge=1, le=50, alias="maxResults"),
        page_token: Optional[str] = Query(default=None, alias="pageToken"),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        return await _proxy(lambda: client.get_subscriptions(channel_id, max_results, page_token))

    @app.get("/youtube/playlists/{playlist_id}")
    async def playlist(playlist_id: str, client: YouTubeClient = Depends(youtube_client)) -> Any:
        return await _proxy(lambda: client.get_playlist(playlist_id))

    @app.get("/youtube/playlists/{playlist_id}/items")
    async def playlist_items(
        playlist_id: str,
        max_results: Optional[int] = Query(default=50, ge=1, le=50, alias="maxResults"),
        page_token: Optional[str] = Query(default=None, alias="pageToken"),
        client: YouTubeClient = Depends(youtube_client),
    ) -> Any:
        return await _proxy(lambda: client.get_playlist_items(playlist_id, max_results, page_token))

    # Write operations need OAuth2, which an API key cannot grant.
    mutating_routes = (
        ("PATCH", "/youtube/videos/{video_id}", "update_video"),
        ("DELETE", "/youtube/videos/{video_id}", "delete_video"),
        ("POST", "/youtube/videos/{video_id}/rating", "rate_video"),
        ("POST", "/youtube/playlists", "create_playlist"),
        ("PATCH", "/youtube/playlists/{playlist_id}", "update_playlist"),
        ("DELETE", "/youtube/playlists/{playlist_id}", "delete_playlist"),
        ("POST", "/youtube/playlists/{playlist_id}/items", "add_video_to_playlist"),
        ("DELETE", "/youtube/playlist-items/{item_id}", "remove_video_from_playlist"),
        ("POST", "/youtube/videos/{video_id}/comments", "create_comment"),
        ("POST", "/youtube/comments/{parent_id}/replies", "reply_to_comment"),
        ("PATCH", "/youtube/comments/{comment_id}", "update_comment"),
        ("DELETE", "/youtube/comments/{comment_id}", "delete_comment"),
        ("POST", "/youtube/channels/{channel_id}/subscriptions", "subscribe_to_channel"),
        ("DELETE", "/youtube/subscriptions/{subscription_id}", "unsubscribe_from_channel"),
    )

    def _rejecting_endpoint(operation: str) -> Callable[..., Any]:
        async def endpoint(user: User = Depends(authenticator)) -> None:
            logger.info("User %s attempted unsupported operation %s", user.id, operation)
            raise _http_error(unsupported(operation))

        return endpoint

    for method, path, operation in mutating_routes:
        app.add_api_route(path, _rejecting_endpoint(operation), methods=[method], name=operation)


def register_preference_routes(app: FastAPI, *, database: Database, authenticator: Authenticator) -> None:
    @app.get("/preferences")
    async def get_preferences(user: User = Depends(authenticator)) -> Dict[str, str]:
        preference = await anyio.to_thread.run_sync(database.get_language_preference, user.id)
        return {"language": preference.language if preference else DEFAULT_LANGUAGE}

    @app.put("/preferences/language")
    async def set_language(request: LanguageRequest, user: User = Depends(authenticator)) -> Dict[str, str]:
        try:
            preference = await anyio.to_thread.run_sync(database.set_language, user.id, request.language)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except StorageUnavailable as exc:
            raise _http_error(exc) from exc
        return {"language": preference.language}


__all__ = [
    "INVALID_API_KEY_MESSAGE",
    "NO_API_KEY_MESSAGE",
    "YouTubeClientFactory",
    "create_app",
    "register_auth_routes",
    "register_preference_routes",
    "register_youtube_routes",
]
