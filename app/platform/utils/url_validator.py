from typing import Tuple
from urllib.parse import urlparse


def normalize_url(url: str) -> Tuple[str, bool]:
    """Prefix bare hosts ("example.com") with https://. Returns (url, was_modified)."""
    url = url.strip()

    if not url.lower().startswith(("http://", "https://")):
        return f"https://{url.lstrip('/')}", True

    return url, False


def validate_url(url: str) -> Tuple[bool, str, str]:
    """Returns (is_valid, normalized_url, error_message)."""
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url, _ = normalize_url(url)

    if any(ch.isspace() for ch in normalized_url):
        return False, normalized_url, "Invalid URL format: contains whitespace"

    try:
        parsed = urlparse(normalized_url)
    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"

    if parsed.scheme not in ("http", "https"):
        return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

    if not parsed.hostname or ("." not in parsed.hostname and parsed.hostname != "localhost"):
        return False, normalized_url, "Invalid URL format: missing domain"

    return True, normalized_url, ""
