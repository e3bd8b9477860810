"""Canonical Pydantic models shared across spotterm modules.

The models fall into two groups:

**Configuration models** -- :class:`AuthSettings` is the fully resolved
input to the login flow; :class:`GlobalConfig` is what the user config
file holds (every field optional so that env vars and flags can fill the
gaps).

**Web API models** -- the subset of Spotify Web API objects the list
commands render: :class:`User`, :class:`Artist`, :class:`Track`,
:class:`SimplifiedPlaylist`, :class:`Playlist`, and the generic
:class:`Page` envelope. Unknown response fields are ignored.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"

DEFAULT_SCOPES: tuple[str, ...] = (
    "user-top-read",
    "user-follow-read",
    "user-read-private",
    "user-read-email",
    "user-read-playback-state",
    "user-read-currently-playing",
    "user-modify-playback-state",
    "playlist-read-private",
    "playlist-read-collaborative",
)

DEFAULT_AUTH_TIMEOUT = 120.0
# Upper bound on the login wait: one day.
MAX_AUTH_TIMEOUT = 86400.0


# --- Configuration ---


class AuthSettings(BaseModel):
    """Everything the login flow needs, after precedence resolution.

    Produced by :func:`~spotterm.config.resolve_settings`. The flow itself
    re-validates ``client_id`` and ``redirect_uri`` (see
    :func:`~spotterm.auth.request.parse_redirect_uri`) so that a
    hand-built instance gets the same ``ConfigError`` treatment.

    Example::

        AuthSettings(
            client_id="abc",
            redirect_uri="http://127.0.0.1:8888/callback",
            scopes=["user-read-email"],
            timeout=60,
        )
    """

    client_id: str = Field(description="OAuth2 client id of the registered app")
    redirect_uri: str = Field(
        description="Loopback redirect URI registered with the provider, "
        "e.g. http://127.0.0.1:8888/callback"
    )
    scopes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SCOPES),
        description="Permissions to request, in the order they are sent",
    )
    timeout: float = Field(
        default=DEFAULT_AUTH_TIMEOUT,
        gt=0,
        le=MAX_AUTH_TIMEOUT,
        allow_inf_nan=False,
        description="Seconds to wait for the browser redirect",
    )
    authorize_url: str = SPOTIFY_AUTHORIZE_URL
    token_url: str = SPOTIFY_TOKEN_URL
    api_base_url: str = SPOTIFY_API_BASE_URL
    request_timeout: float = Field(
        default=30.0, gt=0, allow_inf_nan=False, description="HTTP timeout for token and API requests"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/spotterm/config.json``.

    Loaded and saved by :func:`~spotterm.config.load_global_config` and
    :func:`~spotterm.config.save_global_config`. Fields here have the
    lowest precedence; see :func:`~spotterm.config.resolve_settings`.
    """

    client_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    scopes: Optional[list[str]] = None
    timeout: Optional[float] = None
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Web API payloads ---


class _APIModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Followers(_APIModel):
    total: int = 0


class SimplifiedArtist(_APIModel):
    id: Optional[str] = None
    name: str


class Artist(SimplifiedArtist):
    genres: list[str] = Field(default_factory=list)
    popularity: Optional[int] = None
    followers: Optional[Followers] = None


class Album(_APIModel):
    id: Optional[str] = None
    name: str
    release_date: Optional[str] = None


class Track(_APIModel):
    """A full track object. Local files may lack an ``id``."""

    id: Optional[str] = None
    name: str
    artists: list[SimplifiedArtist] = Field(default_factory=list)
    album: Optional[Album] = None
    duration_ms: int = 0
    popularity: Optional[int] = None
    explicit: bool = False

    @property
    def artist_names(self) -> str:
        return ", ".join(a.name for a in self.artists)

    @property
    def duration(self) -> str:
        """Duration formatted as ``m:ss``."""
        minutes, seconds = divmod(self.duration_ms // 1000, 60)
        return f"{minutes}:{seconds:02d}"


class User(_APIModel):
    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    country: Optional[str] = None
    product: Optional[str] = None
    followers: Optional[Followers] = None


class PlaylistOwner(_APIModel):
    id: str
    display_name: Optional[str] = None


class TracksRef(_APIModel):
    total: int = 0


class SimplifiedPlaylist(_APIModel):
    id: str
    name: str
    description: Optional[str] = None
    owner: Optional[PlaylistOwner] = None
    public: Optional[bool] = None
    collaborative: bool = False
    tracks: Optional[TracksRef] = None


T = TypeVar("T")


class Page(_APIModel, Generic[T]):
    """Spotify paging envelope. Only the loaded page is kept."""

    items: list[T] = Field(default_factory=list)
    total: int = 0
    limit: int = 0
    offset: int = 0
    next: Optional[str] = None
    previous: Optional[str] = None

    @field_validator("items", mode="before")
    @classmethod
    def _drop_null_items(cls, v: object) -> object:
        # Removed tracks come back as nulls inside playlist pages.
        if isinstance(v, list):
            return [item for item in v if item is not None]
        return v


class PlaylistItem(_APIModel):
    added_at: Optional[str] = None
    track: Optional[Track] = None


class Playlist(SimplifiedPlaylist):
    followers: Optional[Followers] = None
    tracks: Page[PlaylistItem] = Field(default_factory=Page[PlaylistItem])  # type: ignore[assignment]
