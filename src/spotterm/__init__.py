"""spotterm -- browse a Spotify account's playlists, top tracks and top artists.

Before any command touches the Web API, spotterm signs the user in with
the OAuth2 Authorization Code grant with PKCE over a loopback redirect:
it opens the consent page in the browser, catches the redirect on a
short-lived local HTTP listener, checks the anti-forgery ``state`` value
and exchanges the code for a bearer token.

Typical workflow::

    export SPOTIFY_CLIENT_ID=...                       # from the developer dashboard
    export SPOTIFY_REDIRECT_URI=http://127.0.0.1:8888/callback
    spotterm top-tracks --limit 10

Modules:
    app: Typer application and CLI entry point.
    auth: PKCE material, authorization URL, loopback listener, login flow.
    client: Web API client consuming the authenticated session.
    models: Pydantic models for settings and API payloads.
    config: XDG-aware configuration and settings resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
