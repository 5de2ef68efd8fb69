"""Local answers for OAuth discovery probes.

The upstream does not publish authorization-server metadata, so probes are
answered here with a 404 instead of producing noisy upstream errors.
"""

from starlette.responses import PlainTextResponse

DISCOVERY_PREFIX = "/.well-known/oauth-authorization-server"


def is_discovery_path(path: str) -> bool:
    """Identify well-known OAuth discovery URL probes."""
    return path.startswith(DISCOVERY_PREFIX)


def discovery_response() -> PlainTextResponse:
    """Build the not-found reply for a discovery probe."""
    return PlainTextResponse("404 page not found\n", status_code=404)
