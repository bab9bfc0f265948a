"""Application-wide constants."""

STORAGE_VERSION = "1.0.0"

DEFAULT_REQUEST_NAME = "New Request"
DEFAULT_MAX_HISTORY_ITEMS = 1000
DEFAULT_TIMEOUT_SECONDS = 30.0

# Methods whose body is encoded and sent.
BODY_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH"})

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")

CONTENT_TYPE_BY_BODY_TYPE: dict[str, str] = {
    "json": "application/json",
    "xml": "application/xml",
    "x-www-form-urlencoded": "application/x-www-form-urlencoded",
}

NETWORK_ERROR_STATUS_TEXT = "Network Error"

HEADER_SEARCH_LIMIT = 10

# (name, description, category)
COMMON_HEADERS: list[tuple[str, str, str]] = [
    ("Accept", "Content types the client can process", "Standard"),
    ("Accept-Charset", "Character sets the client accepts", "Standard"),
    ("Accept-Encoding", "Content encodings the client accepts", "Standard"),
    ("Accept-Language", "Natural languages the client prefers", "Standard"),
    ("Authorization", "Credentials for authenticating the client", "Standard"),
    ("Cache-Control", "Caching directives", "Standard"),
    ("Connection", "Connection management options", "Standard"),
    ("Content-Encoding", "Encoding applied to the body", "Standard"),
    ("Content-Length", "Size of the body in bytes", "Standard"),
    ("Content-Type", "Media type of the body", "Standard"),
    ("Cookie", "Cookies previously sent by the server", "Standard"),
    ("Date", "Date and time the message was sent", "Standard"),
    ("Expect", "Behaviour the client expects from the server", "Standard"),
    ("Forwarded", "Proxy information about the original request", "Standard"),
    ("From", "Email address of the requesting user", "Standard"),
    ("Host", "Host and port of the target server", "Standard"),
    ("If-Match", "Only act if the entity tag matches", "Standard"),
    ("If-Modified-Since", "Only return the resource if modified since", "Standard"),
    ("If-None-Match", "Only act if the entity tag does not match", "Standard"),
    ("If-Range", "Send the range only if the entity is unchanged", "Standard"),
    ("If-Unmodified-Since", "Only act if unmodified since", "Standard"),
    ("Max-Forwards", "Limit on proxy hops", "Standard"),
    ("Origin", "Origin that initiated the request", "Standard"),
    ("Pragma", "Implementation-specific directives", "Standard"),
    ("Proxy-Authorization", "Credentials for a proxy", "Standard"),
    ("Range", "Byte range to return", "Standard"),
    ("Referer", "Address of the previous page", "Standard"),
    ("TE", "Transfer encodings the client accepts", "Standard"),
    ("Upgrade", "Ask the server to switch protocols", "Standard"),
    ("User-Agent", "Client software identification", "Standard"),
    ("Via", "Proxies the request passed through", "Standard"),
    ("X-Api-Key", "API key", "Custom"),
    ("X-Auth-Token", "Authentication token", "Custom"),
    ("X-Correlation-ID", "Identifier correlating related requests", "Custom"),
    ("X-CSRF-Token", "Cross-site request forgery token", "Custom"),
    ("X-Forwarded-For", "Originating client IP address", "Custom"),
    ("X-Forwarded-Host", "Original host requested by the client", "Custom"),
    ("X-Forwarded-Proto", "Original protocol used by the client", "Custom"),
    ("X-HTTP-Method-Override", "Override the HTTP method", "Custom"),
    ("X-Real-IP", "Client IP address", "Custom"),
    ("X-Request-ID", "Unique request identifier", "Custom"),
    ("X-Requested-With", "Marks AJAX requests", "Custom"),
]
