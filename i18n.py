"""
Locale negotiation.

The UI locale lives in the NEXT_LOCALE cookie. When the cookie is missing
or holds an unsupported value, the locale is derived from the primary
Accept-Language tag and written back for a year. API and static-asset
requests are left alone.
"""

from fastapi import Request

LOCALES = ("it", "de", "en")
DEFAULT_LOCALE = "en"
LOCALE_COOKIE = "NEXT_LOCALE"
LOCALE_COOKIE_MAX_AGE = 60 * 60 * 24 * 365

_LANGUAGE_PREFIXES = {
    "de": ("de", "de-de", "de-at", "de-ch"),
    "it": ("it", "it-it", "it-ch"),
}


def locale_from_accept_language(header: str) -> str:
    """Map the first Accept-Language entry to a supported locale."""
    primary = (header or "").split(",")[0].split(";")[0].strip().lower()
    if not primary:
        return DEFAULT_LOCALE
    for locale, prefixes in _LANGUAGE_PREFIXES.items():
        if any(primary.startswith(p) for p in prefixes):
            return locale
    return DEFAULT_LOCALE


def negotiate_locale(cookie_value: str = None, accept_language: str = None) -> str:
    if cookie_value in LOCALES:
        return cookie_value
    return locale_from_accept_language(accept_language)


def is_page_request(path: str) -> bool:
    """Page routes only: skip /api, framework internals and anything with a file extension."""
    if path.startswith(("/api", "/_next", "/_vercel", "/static")):
        return False
    last = path.rsplit("/", 1)[-1]
    return "." not in last


def request_locale(request: Request) -> str:
    return negotiate_locale(
        request.cookies.get(LOCALE_COOKIE),
        request.headers.get("accept-language"),
    )


async def locale_middleware(request: Request, call_next):
    """Attach request.state.locale and persist a negotiated locale cookie on page requests."""
    cookie_value = request.cookies.get(LOCALE_COOKIE)
    locale = request_locale(request)
    request.state.locale = locale

    response = await call_next(request)

    if cookie_value not in LOCALES and is_page_request(request.url.path):
        response.set_cookie(
            key=LOCALE_COOKIE,
            value=locale,
            path="/",
            max_age=LOCALE_COOKIE_MAX_AGE,
        )
    return response
