from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from dietpanel.core.config import settings

PURCHASE_CTA_PARAM = "module"


def build_purchase_url(module: int, base_url: str | None = None) -> str:
    """
    Purchase call-to-action URL for a module.

    Existing query parameters on the base URL are kept:
    ``https://x/buy?source=app`` -> ``https://x/buy?source=app&module=2``
    """
    base = base_url or settings.PZK_PURCHASE_CTA_BASE_URL
    parts = urlsplit(base)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != PURCHASE_CTA_PARAM]
    query.append((PURCHASE_CTA_PARAM, str(module)))
    return urlunsplit(parts._replace(query=urlencode(query)))


def with_status(return_url: str, status: str) -> str:
    """Append ``status=...`` to a return URL with ``?`` or ``&`` as needed."""
    separator = "&" if "?" in return_url else "?"
    return f"{return_url}{separator}status={status}"
