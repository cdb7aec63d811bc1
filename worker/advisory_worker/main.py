import argparse
import gzip
import json
import logging
import os
import zlib
from pathlib import Path

import requests
from jsonschema import Draft202012Validator

from .security import validate_feed_path, validate_feed_url

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = Path(__file__).resolve().parent / "nvd_feed.schema.json"
NVD_FEED_BASE_URL = "https://nvd.nist.gov/feeds/json/cve/1.0"
GZIP_MAGIC = b"\x1f\x8b"


def load_schema(schema_path: Path) -> dict:
    with schema_path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_feed(feed: dict, schema: dict) -> list[str]:
    validator = Draft202012Validator(schema)
    errors = []
    for err in validator.iter_errors(feed):
        location = "/".join(str(part) for part in err.absolute_path) or "<root>"
        errors.append(f"{location}: {err.message}")
    return errors


def decode_feed(raw: bytes) -> dict:
    if raw.startswith(GZIP_MAGIC):
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError, zlib.error) as exc:
            raise SystemExit(f"Invalid gzip feed: {exc}") from exc
    try:
        feed = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SystemExit(f"Invalid JSON feed: {exc}") from exc
    if not isinstance(feed, dict):
        raise SystemExit("Feed must be a JSON object")
    return feed


def feed_url(year: int, base_url: str = NVD_FEED_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/nvdcve-1.0-{year}.json.gz"


def download_feed(url: str) -> bytes:
    url = validate_feed_url(url)
    logger.info("Downloading %s", url)
    response = requests.get(url, timeout=120)
    if response.status_code >= 300:
        raise SystemExit(f"Failed download: {response.status_code} {url}")
    return response.content


def _auth_headers() -> dict:
    api_key = os.environ.get("API_KEY")
    if not api_key:
        return {}
    return {"X-API-Key": api_key}


def post_feed(api_base_url: str, filename: str, content: bytes) -> dict:
    url = f"{api_base_url.rstrip('/')}/nvd/import"
    response = requests.post(
        url,
        files={"file": (filename, content, "application/octet-stream")},
        headers=_auth_headers(),
        timeout=600,
    )
    if response.status_code >= 300:
        raise SystemExit(f"Failed import: {response.status_code} {response.text}")
    return response.json()


def main() -> None:
    parser = argparse.ArgumentParser(description="Load an NVD JSON 1.0 feed into the advisory API")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", "-i", help="Local feed file (.json or .json.gz)")
    source.add_argument("--year", "-y", type=int, help="Download the yearly feed from NVD")
    parser.add_argument("--schema", default=str(DEFAULT_SCHEMA))
    parser.add_argument("--api-base", default=os.environ.get("API_BASE_URL", "http://localhost:8000"))
    parser.add_argument("--feed-base", default=os.environ.get("NVD_FEED_BASE_URL", NVD_FEED_BASE_URL))
    args = parser.parse_args()

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.input:
        try:
            path = validate_feed_path(args.input)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        filename = path.name
        content = path.read_bytes()
    else:
        url = feed_url(args.year, args.feed_base)
        filename = url.rsplit("/", 1)[-1]
        try:
            content = download_feed(url)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc

    feed = decode_feed(content)
    schema_path = Path(args.schema)
    if schema_path.exists():
        errors = validate_feed(feed, load_schema(schema_path))
        if errors:
            raise SystemExit("Schema validation failed:\n" + "\n".join(errors[:20]))

    summary = post_feed(args.api_base, filename, content)
    logger.info(
        "Imported %s advisories from %s (%s skipped)",
        summary.get("processed"),
        filename,
        summary.get("skipped"),
    )


if __name__ == "__main__":
    main()
