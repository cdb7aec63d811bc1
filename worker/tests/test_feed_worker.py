import gzip
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from advisory_worker.main import (
    DEFAULT_SCHEMA,
    decode_feed,
    download_feed,
    feed_url,
    load_schema,
    main,
    post_feed,
    validate_feed,
)
from advisory_worker.security import validate_feed_path, validate_feed_url

SAMPLE_FEED = {
    "CVE_data_type": "CVE",
    "CVE_Items": [
        {
            "cve": {"CVE_data_meta": {"ID": "CVE-2018-1000001"}},
            "configurations": {
                "nodes": [
                    {
                        "operator": "OR",
                        "cpe": [{"cpe22Uri": "cpe:/a:gnu:glibc:2.26", "vulnerable": True}],
                        "children": [{"operator": "AND", "cpe": None}],
                    }
                ]
            },
            "publishedDate": "2018-01-31T14:29Z",
        }
    ],
}


class FeedDecodingTests(unittest.TestCase):
    def test_plain_and_gzip(self) -> None:
        raw = json.dumps(SAMPLE_FEED).encode("utf-8")
        self.assertEqual(decode_feed(raw), SAMPLE_FEED)
        self.assertEqual(decode_feed(gzip.compress(raw)), SAMPLE_FEED)

    def test_invalid_json_exits(self) -> None:
        with self.assertRaises(SystemExit):
            decode_feed(b"{broken")

    def test_non_object_exits(self) -> None:
        with self.assertRaises(SystemExit):
            decode_feed(b"[]")

    def test_truncated_gzip_exits(self) -> None:
        with self.assertRaises(SystemExit):
            decode_feed(gzip.compress(b'{"CVE_Items": []}')[:-12])

    def test_invalid_utf8_exits(self) -> None:
        with self.assertRaises(SystemExit):
            decode_feed(b'{"a": "\xff\xfe\xff"}')


class FeedSchemaTests(unittest.TestCase):
    def setUp(self) -> None:
        self.schema = load_schema(DEFAULT_SCHEMA)

    def test_sample_is_valid(self) -> None:
        self.assertEqual(validate_feed(SAMPLE_FEED, self.schema), [])

    def test_missing_items(self) -> None:
        errors = validate_feed({"CVE_data_type": "CVE"}, self.schema)
        self.assertEqual(len(errors), 1)
        self.assertIn("CVE_Items", errors[0])

    def test_empty_items(self) -> None:
        self.assertTrue(validate_feed({"CVE_Items": []}, self.schema))

    def test_bad_node_operator_reports_location(self) -> None:
        feed = json.loads(json.dumps(SAMPLE_FEED))
        feed["CVE_Items"][0]["configurations"]["nodes"][0]["operator"] = 1
        errors = validate_feed(feed, self.schema)
        self.assertEqual(len(errors), 1)
        self.assertTrue(errors[0].startswith("CVE_Items/0/configurations/nodes/0/operator"))


class FeedLocationTests(unittest.TestCase):
    def test_feed_url(self) -> None:
        self.assertEqual(
            feed_url(2018, "https://nvd.nist.gov/feeds/json/cve/1.0/"),
            "https://nvd.nist.gov/feeds/json/cve/1.0/nvdcve-1.0-2018.json.gz",
        )

    def test_feed_url_validation(self) -> None:
        self.assertEqual(validate_feed_url("https://example.org/feed.json.gz"), "https://example.org/feed.json.gz")
        with self.assertRaises(ValueError):
            validate_feed_url("ftp://example.org/feed.json.gz")
        with self.assertRaises(ValueError):
            validate_feed_url("https://example.org/feed.json.gz;rm")

    def test_feed_path_validation(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            good = Path(tmp) / "nvdcve-1.0-2018.json"
            good.write_text("{}", encoding="utf-8")
            self.assertEqual(validate_feed_path(str(good)), good.resolve())

            script = Path(tmp) / "feed.py"
            script.write_text("", encoding="utf-8")
            with self.assertRaises(ValueError):
                validate_feed_path(str(script))
            with self.assertRaises(ValueError):
                validate_feed_path(str(Path(tmp) / "missing.json"))


class PostFeedTests(unittest.TestCase):
    def test_posts_file_with_api_key(self) -> None:
        response = mock.Mock(status_code=200)
        response.json.return_value = {"processed": 1, "skipped": 0, "advisory_ids": [1]}
        with mock.patch.dict("os.environ", {"API_KEY": "k"}), mock.patch(
            "advisory_worker.main.requests.post", return_value=response
        ) as post:
            summary = post_feed("http://api:8000/", "feed.json", b"{}")

        self.assertEqual(summary["processed"], 1)
        args, kwargs = post.call_args
        self.assertEqual(args[0], "http://api:8000/nvd/import")
        self.assertEqual(kwargs["headers"], {"X-API-Key": "k"})
        self.assertEqual(kwargs["files"]["file"][0], "feed.json")

    def test_error_status_exits(self) -> None:
        response = mock.Mock(status_code=400, text="bad feed")
        with mock.patch("advisory_worker.main.requests.post", return_value=response):
            with self.assertRaises(SystemExit):
                post_feed("http://api:8000", "feed.json", b"{}")


class DownloadFeedTests(unittest.TestCase):
    def test_returns_content(self) -> None:
        response = mock.Mock(status_code=200, content=b"feed-bytes")
        with mock.patch("advisory_worker.main.requests.get", return_value=response) as get:
            self.assertEqual(download_feed("https://feeds.example.org/nvdcve-1.0-2018.json.gz"), b"feed-bytes")
        get.assert_called_once()

    def test_error_status_exits_after_one_attempt(self) -> None:
        response = mock.Mock(status_code=404)
        with mock.patch("advisory_worker.main.requests.get", return_value=response) as get:
            with self.assertRaises(SystemExit):
                download_feed("https://feeds.example.org/nvdcve-1.0-1999.json.gz")
        self.assertEqual(get.call_count, 1)


class WorkerCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.accepted = mock.Mock(status_code=200)
        self.accepted.json.return_value = {"processed": 1, "skipped": 0, "advisory_ids": [1]}

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_main(self, *argv: str) -> None:
        with mock.patch.object(sys, "argv", ["nvd-feed-worker", *argv]):
            main()

    def test_year_downloads_and_posts(self) -> None:
        content = gzip.compress(json.dumps(SAMPLE_FEED).encode("utf-8"))
        downloaded = mock.Mock(status_code=200, content=content)
        with mock.patch("advisory_worker.main.requests.get", return_value=downloaded) as get, mock.patch(
            "advisory_worker.main.requests.post", return_value=self.accepted
        ) as post:
            self.run_main(
                "--year", "2018",
                "--feed-base", "https://feeds.example.org/cve/1.0",
                "--api-base", "http://api:8000",
            )

        self.assertEqual(get.call_args[0][0], "https://feeds.example.org/cve/1.0/nvdcve-1.0-2018.json.gz")
        args, kwargs = post.call_args
        self.assertEqual(args[0], "http://api:8000/nvd/import")
        self.assertEqual(kwargs["files"]["file"][0], "nvdcve-1.0-2018.json.gz")
        self.assertEqual(kwargs["files"]["file"][1], content)

    def test_failed_download_exits_without_posting(self) -> None:
        with mock.patch(
            "advisory_worker.main.requests.get", return_value=mock.Mock(status_code=503)
        ), mock.patch("advisory_worker.main.requests.post") as post:
            with self.assertRaises(SystemExit):
                self.run_main("--year", "2018", "--feed-base", "https://feeds.example.org/cve/1.0")
        post.assert_not_called()

    def test_input_file_is_posted(self) -> None:
        path = self.tmp / "nvdcve-1.0-sample.json"
        path.write_text(json.dumps(SAMPLE_FEED), encoding="utf-8")
        with mock.patch("advisory_worker.main.requests.post", return_value=self.accepted) as post:
            self.run_main("--input", str(path), "--api-base", "http://api:8000")

        kwargs = post.call_args[1]
        self.assertEqual(kwargs["files"]["file"][0], "nvdcve-1.0-sample.json")
        self.assertEqual(kwargs["files"]["file"][1], path.read_bytes())

    def test_schema_errors_exit_before_posting(self) -> None:
        feed = {"CVE_Items": [{"publishedDate": index} for index in range(25)]}
        path = self.tmp / "broken.json"
        path.write_text(json.dumps(feed), encoding="utf-8")
        with mock.patch("advisory_worker.main.requests.post") as post:
            with self.assertRaises(SystemExit) as raised:
                self.run_main("--input", str(path))

        post.assert_not_called()
        lines = str(raised.exception.code).splitlines()
        self.assertEqual(lines[0], "Schema validation failed:")
        self.assertEqual(len(lines), 21)

    def test_rejected_input_path_exits(self) -> None:
        path = self.tmp / "feed.txt"
        path.write_text("{}", encoding="utf-8")
        with mock.patch("advisory_worker.main.requests.post") as post:
            with self.assertRaises(SystemExit):
                self.run_main("--input", str(path))
        post.assert_not_called()

    def test_input_and_year_are_exclusive(self) -> None:
        with self.assertRaises(SystemExit):
            self.run_main("--input", "feed.json", "--year", "2018")


if __name__ == "__main__":
    unittest.main()
