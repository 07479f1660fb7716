"""URL normalization for feed identity and article identity."""

from urllib.parse import urlsplit

from river_of_news.errors import InvalidUrlError

DEFAULT_PORTS = {"http": 80, "https": 443}
TRACKING_PARAMS = ("fbclid", "gclid")


def normalize_feed_url(url: str) -> str:
    """Normalize a feed URL so equivalent spellings collapse to one value.

    Raises:
        InvalidUrlError: If the URL is not an absolute http(s) URL.
    """
    parts = _split(url)
    if parts is None:
        raise InvalidUrlError("Invalid feed URL")
    scheme, host, port, path, query = parts
    return _join(scheme, host, port, path, query)


def canonicalize_article_url(url: str | None) -> str | None:
    """Canonicalize an article link, dropping tracking query parameters.

    Returns None when the link is missing or not an absolute http(s) URL.
    """
    if not url or not url.strip():
        return None
    parts = _split(url)
    if parts is None:
        return None
    scheme, host, port, path, query = parts
    return _join(scheme, host, port, path, _strip_tracking(query))


def _split(url: str) -> tuple[str, str, int | None, str, str] | None:
    try:
        result = urlsplit(url.strip())
        port = result.port
    except ValueError:
        return None

    scheme = result.scheme.lower()
    if scheme not in DEFAULT_PORTS or not result.hostname:
        return None

    host = result.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port == DEFAULT_PORTS[scheme]:
        port = None

    path = result.path
    if path.endswith("/"):
        path = path[:-1]
    if not path:
        path = "/"
    return scheme, host, port, path, result.query


def _join(scheme: str, host: str, port: int | None, path: str, query: str) -> str:
    netloc = f"{host}:{port}" if port is not None else host
    canonical = f"{scheme}://{netloc}{path}"
    if query:
        canonical += f"?{query}"
    return canonical


def _strip_tracking(query: str) -> str:
    retained = []
    for pair in query.split("&"):
        pair = pair.strip()
        if not pair:
            continue
        key = pair.split("=", 1)[0].strip().lower()
        if key.startswith("utm_") or key in TRACKING_PARAMS:
            continue
        retained.append(pair)
    return "&".join(retained)
