"""Upstream URL resolution."""

from typing import List
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

import httpx


def resolve_upstream_url(
    base_url: str,
    path: str,
    raw_path: str = "",
    query: str = "",
    fragment: str = "",
) -> httpx.URL:
    """Resolve an inbound path against the upstream base URL.

    Standard RFC 3986 reference resolution is used rather than prefix
    joining: an absolute inbound path replaces any path on the base URL.
    The raw (still percent-encoded) path is used verbatim when present so
    encoded segments such as ``%2F`` survive.

    Args:
        base_url: Absolute upstream base URL.
        path: Decoded inbound path.
        raw_path: Undecoded inbound path, if the server provided one.
        query: Raw query string, without ``?``.
        fragment: Fragment, without ``#``.

    Returns:
        httpx.URL: Absolute upstream URL.
    """
    reference_path = raw_path or quote(path, safe="/%:@!$&'()*+,;=-._~")

    if reference_path.startswith("/"):
        # Resolved by hand so that "//x" stays a path instead of becoming an authority.
        base = urlsplit(base_url)
        target = urlunsplit(
            (base.scheme, base.netloc, remove_dot_segments(reference_path), query, fragment)
        )
    else:
        target = urljoin(base_url, urlunsplit(("", "", reference_path, query, fragment)))

    return httpx.URL(target)


def remove_dot_segments(path: str) -> str:
    """Remove ``.`` and ``..`` segments from an absolute path (RFC 3986 section 5.2.4).

    Args:
        path: Absolute path.

    Returns:
        str: Path without dot segments.
    """
    segments = path.split("/")
    output: List[str] = []
    for segment in segments[1:]:
        if segment == ".":
            continue
        if segment == "..":
            if output:
                output.pop()
            continue
        output.append(segment)

    # A trailing dot segment still denotes a directory.
    if segments[-1] in (".", ".."):
        output.append("")
    return "/" + "/".join(output)
