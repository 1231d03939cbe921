"""URL assembly and query-string helpers.

The target URL is always rebuilt from the request's scheme, host, path and
query values, so calling create_url() twice without intervening mutation
yields the same string.
"""

from __future__ import annotations

from urllib.parse import quote, unquote, unquote_plus, urlencode, urlsplit, urlunsplit


_SLASH = "/"
_PATH_SAFE = "/:@!$&'()*+,;=~"


def combine_path_components(*components: str) -> str:
    """Join path segments with "/".

    One leading and one trailing separator is stripped from each segment.
    No separator is added after the last segment.

        combine_path_components("/api/", "/v1/", "widgets") == "api/v1/widgets"
    """
    parts = []
    for component in components:
        if component.startswith(_SLASH):
            component = component[1:]
        if component.endswith(_SLASH):
            component = component[:-1]
        parts.append(component)
    return _SLASH.join(parts)


def parse_query_string(raw_query: str) -> dict[str, list[str]]:
    """Parse a raw query string into single-valued lists.

    Splits on "&" then on the first "=". A parameter without "=" maps to the
    empty string. Keys and values are percent-decoded. A repeated key keeps
    only its last value.
    """
    values: dict[str, list[str]] = {}
    for param in raw_query.split("&"):
        if not param:
            continue
        key, _, value = param.partition("=")
        values[unquote_plus(key)] = [unquote_plus(value)]
    return values


def encode_values(values: dict[str, list[str]] | None) -> str:
    """Encode multi-valued pairs as ``application/x-www-form-urlencoded``.

    Keys are sorted so the encoding does not depend on insertion order.
    Values of a single key keep the order they were added in.
    """
    if not values:
        return ""
    pairs = [(key, value) for key in sorted(values) for value in values[key]]
    return urlencode(pairs)


def create_url(
    scheme: str,
    host: str,
    path: str,
    query: dict[str, list[str]] | None = None,
) -> str:
    """Build the canonical target URL string."""
    if host and path and not path.startswith(_SLASH):
        path = _SLASH + path
    return urlunsplit((scheme, host, quote(path, safe=_PATH_SAFE), encode_values(query), ""))


def split_url(url: str) -> tuple[str, str, str, dict[str, list[str]]]:
    """Split a full URL string into (scheme, host, path, query values)."""
    parts = urlsplit(url)
    return parts.scheme, parts.netloc, unquote(parts.path), parse_query_string(parts.query)
