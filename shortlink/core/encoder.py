import base64
import hashlib
import string


# Lowercase letters and digits, digits first so encode(36) == "10" (Base36)
BASE36 = string.digits + string.ascii_lowercase  # 0-9a-z

# URL-safe Base64 alphabet, same symbols as base64.urlsafe_b64encode
BASE64_URLSAFE = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"

# SHA-256 gives 32 bytes -> 43 significant Base64 symbols
MAX_HASH_LENGTH = 43


def encode(value: int, alphabet: str = BASE36) -> str:
    """
    Encode a non-negative integer in the given alphabet.

    Args:
        value: Integer to encode
        alphabet: Symbols, zero symbol first

    Returns:
        Encoded string, never empty
    """
    if value < 0:
        raise ValueError(f"Cannot encode negative value {value}")

    if value == 0:
        return alphabet[0]

    base = len(alphabet)
    encoded = ""
    while value:
        value, remainder = divmod(value, base)
        encoded = alphabet[remainder] + encoded
    return encoded


def decode(code: str, alphabet: str = BASE36) -> int:
    """Inverse of encode()."""
    if not code:
        raise ValueError("Cannot decode an empty code")

    base = len(alphabet)
    value = 0
    for symbol in code:
        index = alphabet.find(symbol)
        if index < 0:
            raise ValueError(f"Symbol {symbol!r} is not in the alphabet")
        value = value * base + index
    return value


def hash_encode(text: str, length: int) -> str:
    """
    Truncated URL-safe Base64 of the SHA-256 digest of text.

    Truncation is lossy: different texts may share a prefix and the
    collision resolver deals with that.
    """
    if not 1 <= length <= MAX_HASH_LENGTH:
        raise ValueError(f"Hash code length must be between 1 and {MAX_HASH_LENGTH}")

    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:length]
