from urllib.parse import urlparse
import string


# Symbols allowed in custom codes: the URL-safe Base64 alphabet
CUSTOM_CODE_CHARS = set(string.ascii_letters + string.digits + "-_")

RESERVED_CODES = {
    'admin', 'api', 'static', 'www', 'app', 'docs', 'redoc',
    'openapi', 'health', 'status', 'login', 'logout', 'auth',
    'shorten', 'redirect'
}


def is_valid_url(url: str) -> tuple[bool, str]:
    """
    Validate if a URL is valid and safe.

    Args:
        url: The URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not url:
        return False, "URL cannot be empty"

    if len(url) > 2048:
        return False, "URL is too long (max 2048 characters)"

    try:
        result = urlparse(url)
    except ValueError as e:
        return False, f"Invalid URL: {e}"

    # Must have scheme and netloc
    if not all([result.scheme, result.netloc]):
        return False, "Invalid URL format"

    # Only http and https
    if result.scheme not in ['http', 'https']:
        return False, "Only HTTP and HTTPS URLs are allowed"

    # Loopback and private network hosts
    blocked_prefixes = ('127.', '10.', '192.168.', '172.16.', '0.0.0.0')
    host = (result.hostname or '').lower()
    if host in ('localhost', '::1') or host.startswith(blocked_prefixes):
        return False, "Internal/private URLs are not allowed"

    return True, ""


def validate_custom_code(code: str) -> tuple[bool, str]:
    """
    Validate a caller-chosen short code.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not code:
        return False, "Code cannot be empty"

    if len(code) < 3:
        return False, "Code must be at least 3 characters"

    if len(code) > 16:
        return False, "Code must be at most 16 characters"

    if not all(c in CUSTOM_CODE_CHARS for c in code):
        return False, "Code can only contain letters, digits, hyphens and underscores"

    if code.lower() in RESERVED_CODES:
        return False, f"'{code}' is a reserved word and cannot be used"

    return True, ""
