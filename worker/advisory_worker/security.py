from pathlib import Path
from urllib.parse import urlparse

ALLOWED_FEED_SUFFIXES = {".json", ".gz"}


def validate_feed_url(url: str) -> str:
    if not url:
        raise ValueError("Empty URL")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Scheme not allowed: {parsed.scheme}")
    if not parsed.hostname:
        raise ValueError("URL has no hostname")
    dangerous_chars = set(";|&`$(){}[]<>\n\r\\")
    if dangerous_chars.intersection(set(url)):
        raise ValueError("URL contains dangerous characters")
    return url


def validate_feed_path(path: str) -> Path:
    if not path:
        raise ValueError("Empty path")
    target = Path(path).resolve()
    if target.suffix.lower() not in ALLOWED_FEED_SUFFIXES:
        raise ValueError(f"Extension not allowed: {target.suffix}")
    if not target.is_file():
        raise ValueError(f"Feed file not found: {target}")
    return target
