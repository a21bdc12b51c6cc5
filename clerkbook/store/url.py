"""URL canonicalization utilities for capture deduplication."""

from urllib.parse import SplitResult, parse_qsl, urlencode, urlsplit, urlunsplit


# Default tracking parameters to strip (common across many sites)
DEFAULT_STRIP_PARAMS: list[str] = [
    # UTM parameters
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    # Social/sharing
    "fbclid",
    "gclid",
    "dclid",
    "msclkid",
    "twclid",
    "igshid",
    # Analytics
    "_ga",
    "_gl",
    "mc_cid",
    "mc_eid",
    "_hsenc",
    "_hsmi",
    # Email tracking
    "mkt_tok",
    "trk",
]

DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


def canonicalize_url(
    url: str,
    strip_params: list[str] | None = None,
    preserve_fragments: bool = False,
) -> str:
    """Canonicalize a URL for deduplication.

    Canonicalization includes:
    - Lowercasing the scheme and host
    - Dropping default ports (80 for http, 443 for https)
    - Removing trailing slashes (except for root path)
    - Stripping tracking query parameters and sorting the rest
    - Removing fragments

    Args:
        url: The URL to canonicalize.
        strip_params: List of query parameters to strip. If None, uses defaults.
        preserve_fragments: If True, keep the URL fragment.

    Returns:
        Canonicalized URL string.
    """
    if not url:
        return url

    parsed = urlsplit(url.strip())

    scheme = parsed.scheme.lower()
    netloc = _normalize_netloc(scheme, parsed)

    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"

    params_to_strip = strip_params if strip_params is not None else DEFAULT_STRIP_PARAMS
    query = _filter_query_params(parsed.query, params_to_strip)

    fragment = parsed.fragment if preserve_fragments else ""

    return urlunsplit((scheme, netloc, path, query, fragment))


def _normalize_netloc(scheme: str, parsed: SplitResult) -> str:
    """Lowercase the host and drop the scheme's default port.

    Userinfo is kept verbatim; it is case-sensitive.

    Args:
        scheme: Lowercased URL scheme.
        parsed: Result of ``urlsplit``.

    Returns:
        Normalized network location.
    """
    host = (parsed.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"

    try:
        port = parsed.port
    except ValueError:
        port = None

    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"

    userinfo = parsed.netloc.rpartition("@")[0] if "@" in parsed.netloc else ""
    return f"{userinfo}@{host}" if userinfo else host


def _filter_query_params(query: str, strip_params: list[str]) -> str:
    """Filter out tracking parameters from query string.

    Args:
        query: Original query string.
        strip_params: List of parameter names to remove.

    Returns:
        Filtered query string with keys sorted for deterministic output.
    """
    if not query:
        return ""

    strip_set = {p.lower() for p in strip_params}
    filtered = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key.lower() not in strip_set
    ]

    if not filtered:
        return ""

    return urlencode(sorted(filtered), doseq=True)


def extract_domain(url: str) -> str | None:
    """Get the display domain of a URL (host without ``www.``).

    Args:
        url: Absolute URL.

    Returns:
        Lowercased host with a leading ``www.`` removed, or None.
    """
    host = (urlsplit(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None
