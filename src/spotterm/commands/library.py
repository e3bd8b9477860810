"""Library commands -- profile, playlists, top tracks and top artists.

Each command logs in first; a failed login exits before any Web API
request. One page of results is rendered per invocation; use
``--offset`` to move through longer lists.

Typical workflow::

    spotterm me
    spotterm top-tracks --limit 10 --time-range short_term
    spotterm playlists --json | jq '.[].ID'
    spotterm playlist 37i9dQZF1DXcBWIGoYBM5M
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

import typer

from spotterm.client import SpotifyClient
from spotterm.commands import auth as auth_commands
from spotterm.commands import fail
from spotterm.exceptions import SpottermError
from spotterm.models import Page
from spotterm.output import format_response, info, print_table, suggest


class TimeRange(str, Enum):
    """Affinity window for the top-items endpoints."""

    short_term = "short_term"
    medium_term = "medium_term"
    long_term = "long_term"


LIMIT_OPTION = typer.Option(20, "--limit", "-l", min=1, max=50, help="Items per page (1-50).")
OFFSET_OPTION = typer.Option(0, "--offset", min=0, help="Index of the first item.")
TIME_RANGE_OPTION = typer.Option(
    TimeRange.medium_term,
    "--time-range",
    "-t",
    help="short_term (~4 weeks), medium_term (~6 months) or long_term (years).",
)


def _open_client(ctx: typer.Context) -> SpotifyClient:
    try:
        session, settings = auth_commands.login_session(ctx)
    except SpottermError as exc:
        fail(exc)
    return SpotifyClient(session, settings)


def _suggest_next_page(page: Page, limit: int, offset: int) -> None:
    if page.next:
        suggest(f"Showing {offset + 1}-{offset + len(page.items)} of {page.total}. "
                f"Next page: --offset {offset + limit}")


def me_command(ctx: typer.Context) -> None:
    """Show the logged-in user's profile."""
    try:
        with _open_client(ctx) as client:
            user = client.current_user()
    except SpottermError as exc:
        fail(exc)

    format_response(
        {
            "id": user.id,
            "display_name": user.display_name or "",
            "email": user.email or "",
            "country": user.country or "",
            "product": user.product or "",
            "followers": user.followers.total if user.followers else 0,
        }
    )


def playlists_command(
    ctx: typer.Context,
    limit: int = LIMIT_OPTION,
    offset: int = OFFSET_OPTION,
) -> None:
    """List the user's playlists."""
    try:
        with _open_client(ctx) as client:
            page = client.user_playlists(limit=limit, offset=offset)
    except SpottermError as exc:
        fail(exc)

    rows = [
        [
            p.id,
            p.name,
            (p.owner.display_name or p.owner.id) if p.owner else "",
            str(p.tracks.total) if p.tracks else "",
            "yes" if p.public else "no",
        ]
        for p in page.items
    ]
    print_table(["ID", "Name", "Owner", "Tracks", "Public"], rows, title="Playlists")
    _suggest_next_page(page, limit, offset)


def top_tracks_command(
    ctx: typer.Context,
    limit: int = LIMIT_OPTION,
    offset: int = OFFSET_OPTION,
    time_range: TimeRange = TIME_RANGE_OPTION,
) -> None:
    """List the user's top tracks."""
    try:
        with _open_client(ctx) as client:
            page = client.top_tracks(limit=limit, offset=offset, time_range=time_range.value)
    except SpottermError as exc:
        fail(exc)

    rows = [
        [
            str(offset + i),
            t.name,
            t.artist_names,
            t.album.name if t.album else "",
            t.duration,
        ]
        for i, t in enumerate(page.items, 1)
    ]
    print_table(["#", "Name", "Artists", "Album", "Duration"], rows, title="Top tracks")
    _suggest_next_page(page, limit, offset)


def top_artists_command(
    ctx: typer.Context,
    limit: int = LIMIT_OPTION,
    offset: int = OFFSET_OPTION,
    time_range: TimeRange = TIME_RANGE_OPTION,
) -> None:
    """List the user's top artists."""
    try:
        with _open_client(ctx) as client:
            page = client.top_artists(limit=limit, offset=offset, time_range=time_range.value)
    except SpottermError as exc:
        fail(exc)

    rows = [
        [
            str(offset + i),
            a.name,
            ", ".join(a.genres),
            "" if a.popularity is None else str(a.popularity),
            str(a.followers.total) if a.followers else "",
        ]
        for i, a in enumerate(page.items, 1)
    ]
    print_table(["#", "Name", "Genres", "Popularity", "Followers"], rows, title="Top artists")
    _suggest_next_page(page, limit, offset)


def playlist_command(
    ctx: typer.Context,
    playlist_id: str = typer.Argument(help="Playlist id, as listed by 'spotterm playlists'."),
) -> None:
    """Show a playlist and its first page of tracks."""
    try:
        with _open_client(ctx) as client:
            playlist = client.playlist(playlist_id)
    except SpottermError as exc:
        fail(exc)

    owner: Optional[str] = None
    if playlist.owner:
        owner = playlist.owner.display_name or playlist.owner.id
    info(f"{playlist.name}" + (f" by {owner}" if owner else "") + f" ({playlist.tracks.total} tracks)")

    rows = []
    for i, item in enumerate(playlist.tracks.items, 1):
        track = item.track
        if track is None:
            continue
        rows.append(
            [
                str(i),
                track.name,
                track.artist_names,
                track.album.name if track.album else "",
                track.duration,
            ]
        )
    print_table(["#", "Name", "Artists", "Album", "Duration"], rows, title=playlist.name)
    if playlist.tracks.next:
        suggest(f"Showing the first {len(playlist.tracks.items)} of {playlist.tracks.total} tracks")
