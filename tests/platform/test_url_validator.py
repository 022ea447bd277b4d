import pytest

from app.platform.utils.url_validator import normalize_url, validate_url


@pytest.mark.parametrize(
    "raw, expected, modified",
    [
        ("example.com", "https://example.com", True),
        ("  https://example.com/pricing ", "https://example.com/pricing", False),
        ("HTTP://EXAMPLE.COM", "HTTP://EXAMPLE.COM", False),
        ("//example.com", "https://example.com", True),
    ],
)
def test_normalize_url(raw, expected, modified):
    assert normalize_url(raw) == (expected, modified)


@pytest.mark.parametrize("url", ["https://example.com", "example.co.uk/about", "http://localhost:8000"])
def test_valid_urls(url):
    is_valid, normalized, error = validate_url(url)

    assert is_valid
    assert normalized.startswith(("http://", "https://"))
    assert error == ""


@pytest.mark.parametrize("url", ["", "   ", "exa mple.com", "https://nodot", "https://"])
def test_invalid_urls(url):
    is_valid, _, error = validate_url(url)

    assert not is_valid
    assert error
