"""
Tests for the HTTP-backed repository and index adapters.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import requests

from api import IndexClient, IndexQueryError, RepositoryAccessError, RepositoryClient
from core import RateLimiter


def _response(payload=None, json_error=None):
    response = MagicMock()
    response.raise_for_status.return_value = None
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    response.__enter__.return_value = response
    return response


class TestRepositoryClient(unittest.TestCase):
    def setUp(self):
        sleep_patcher = patch("api.repository_client.time.sleep")
        self.mock_sleep = sleep_patcher.start()
        self.addCleanup(sleep_patcher.stop)
        self.session = Mock()
        self.client = RepositoryClient(
            "http://repo.local/fedora/",
            session=self.session,
            rate_limiter=RateLimiter(max_requests=0),
        )

    def test_load_object_sends_identity_and_parses_profile(self):
        self.session.get.return_value = _response(
            {"label": "Photos", "models": ["islandora:collectionCModel"], "parents": ["root"]}
        )
        obj = self.client.load_object("col:1", "alice")

        self.assertEqual(obj.label, "Photos")
        self.assertEqual(obj.content_models, ["islandora:collectionCModel"])
        self.assertEqual(obj.parent_ids, ["root"])

        args, kwargs = self.session.get.call_args
        self.assertEqual(args[0], "http://repo.local/fedora/objects/col:1")
        self.assertEqual(kwargs["params"], {"format": "json"})
        self.assertEqual(kwargs["headers"]["X-On-Behalf-Of"], "alice")

    def test_profiles_are_cached_per_identity(self):
        self.session.get.return_value = _response({"label": "Photos"})

        self.client.load_object("col:1", "alice")
        self.client.load_object("col:1", "alice")
        self.assertEqual(self.session.get.call_count, 1)

        self.client.load_object("col:1", "bob")
        self.assertEqual(self.session.get.call_count, 2)

    def test_missing_label_falls_back_to_id(self):
        self.session.get.return_value = _response({})
        self.assertEqual(self.client.load_object("obj:9", "alice").label, "obj:9")

    def test_content_units_preserve_listing_order(self):
        self.session.get.side_effect = [
            _response({"label": "Book"}),
            _response(
                {
                    "datastreams": [
                        {"dsid": "OBJ", "label": "Scan", "mimeType": "image/tiff"},
                        {"dsid": "PDF", "mimeType": "application/pdf"},
                    ]
                }
            ),
        ]
        units = self.client.load_object("book:1", "alice").content_units()

        self.assertEqual([u.id for u in units], ["OBJ", "PDF"])
        self.assertEqual(units[1].label, "PDF")
        self.assertEqual(units[0].mimetype, "image/tiff")

    def test_transport_error_becomes_access_error(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(RepositoryAccessError) as ctx:
            self.client.load_object("obj:1", "alice")
        self.assertEqual(ctx.exception.object_id, "obj:1")
        self.assertEqual(self.session.get.call_count, 3)
        self.assertEqual([c.args[0] for c in self.mock_sleep.call_args_list], [1, 2])

    def test_timeout_is_retried_with_backoff(self):
        self.session.get.side_effect = [
            requests.exceptions.Timeout("slow"),
            _response({"label": "Photos"}),
        ]
        with self.assertLogs(level="WARNING"):
            obj = self.client.load_object("col:1", "alice")

        self.assertEqual(obj.label, "Photos")
        self.assertEqual(self.session.get.call_count, 2)
        self.mock_sleep.assert_called_once_with(1)

    def test_http_error_is_not_retried(self):
        response = _response()
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("403")
        self.session.get.return_value = response

        with self.assertRaises(RepositoryAccessError):
            self.client.load_object("obj:1", "alice")
        self.assertEqual(self.session.get.call_count, 1)
        self.mock_sleep.assert_not_called()

    def test_invalid_json_becomes_access_error(self):
        self.session.get.return_value = _response(json_error=ValueError("bad json"))
        with self.assertRaises(RepositoryAccessError):
            self.client.load_object("obj:1", "alice")

    def test_malformed_datastream_listing_is_rejected(self):
        self.session.get.return_value = _response([{"label": "no id"}])
        with self.assertRaises(RepositoryAccessError):
            self.client.list_datastreams("obj:1", "alice")


class TestContentDownload(unittest.TestCase):
    def setUp(self):
        sleep_patcher = patch("api.repository_client.time.sleep")
        self.mock_sleep = sleep_patcher.start()
        self.addCleanup(sleep_patcher.stop)
        self.temp_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.temp_dir, True)
        self.session = Mock()
        self.client = RepositoryClient(
            "http://repo.local/fedora",
            session=self.session,
            rate_limiter=RateLimiter(max_requests=0),
        )

    def test_content_is_streamed_to_file(self):
        response = _response()
        response.iter_content.return_value = [b"abc", b"", b"def"]
        self.session.get.return_value = response
        target = self.temp_dir / "content.bin"

        self.client.download_content("obj:1", "OBJ", "alice", target)

        self.assertEqual(target.read_bytes(), b"abcdef")
        args, kwargs = self.session.get.call_args
        self.assertEqual(
            args[0], "http://repo.local/fedora/objects/obj:1/datastreams/OBJ/content"
        )
        self.assertTrue(kwargs["stream"])

    def test_partial_file_removed_on_failure(self):
        def broken_stream(chunk_size):
            yield b"abc"
            raise requests.exceptions.ChunkedEncodingError("connection reset")

        response = _response()
        response.iter_content.side_effect = broken_stream
        self.session.get.return_value = response
        target = self.temp_dir / "content.bin"

        with self.assertRaises(RepositoryAccessError) as ctx:
            self.client.download_content("obj:1", "OBJ", "alice", target)

        self.assertEqual(ctx.exception.unit_id, "OBJ")
        self.assertFalse(os.path.exists(target))

    def test_dropped_download_is_retried_from_scratch(self):
        def dropped_stream(chunk_size):
            yield b"partial"
            raise requests.exceptions.ConnectionError("reset by peer")

        dropped = _response()
        dropped.iter_content.side_effect = dropped_stream
        complete = _response()
        complete.iter_content.return_value = [b"whole"]
        self.session.get.side_effect = [dropped, complete]
        target = self.temp_dir / "content.bin"

        with self.assertLogs(level="WARNING"):
            self.client.download_content("obj:1", "OBJ", "alice", target)

        self.assertEqual(target.read_bytes(), b"whole")
        self.assertEqual(self.session.get.call_count, 2)


class TestIndexClient(unittest.TestCase):
    def setUp(self):
        self.session = Mock()
        self.client = IndexClient(
            "http://solr.local/solr/collection1",
            ["RELS_EXT_isMemberOfCollection_uri_ms", "RELS_EXT_isMemberOf_uri_ms"],
            session=self.session,
            rate_limiter=RateLimiter(max_requests=0),
        )

    def test_query_ors_membership_relations(self):
        self.assertEqual(
            self.client.build_query("col:1"),
            'RELS_EXT_isMemberOfCollection_uri_ms:"info:fedora/col:1" OR '
            'RELS_EXT_isMemberOf_uri_ms:"info:fedora/col:1"',
        )

    def test_count_children(self):
        self.session.get.return_value = _response({"response": {"numFound": 7, "docs": []}})
        self.assertEqual(self.client.count_children("col:1", "alice"), 7)

        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["params"]["rows"], 0)
        self.assertEqual(kwargs["headers"], {"X-On-Behalf-Of": "alice"})

    def test_list_children_sorted_by_identifier(self):
        self.session.get.return_value = _response(
            {"response": {"numFound": 3, "docs": [{"PID": "a:1"}, {"PID": ["a:2"]}, {}]}}
        )
        self.assertEqual(self.client.list_children("col:1", "alice"), ["a:1", "a:2"])

        args, kwargs = self.session.get.call_args
        self.assertEqual(args[0], "http://solr.local/solr/collection1/select")
        self.assertEqual(kwargs["params"]["sort"], "PID asc")
        self.assertEqual(kwargs["params"]["fl"], "PID")
        self.assertEqual(kwargs["params"]["rows"], 100000)

    def test_transport_error_becomes_index_error(self):
        self.session.get.side_effect = requests.exceptions.Timeout("slow")
        with self.assertRaises(IndexQueryError):
            self.client.count_children("col:1", "alice")

    def test_malformed_response_becomes_index_error(self):
        self.session.get.return_value = _response({"error": "bad query"})
        with self.assertRaises(IndexQueryError) as ctx:
            self.client.list_children("col:1", "alice")
        self.assertIsInstance(ctx.exception, RepositoryAccessError)

    def test_non_numeric_count_becomes_index_error(self):
        self.session.get.return_value = _response({"response": {"numFound": "n/a"}})
        with self.assertRaises(IndexQueryError) as ctx:
            self.client.count_children("col:1", "alice")
        self.assertEqual(ctx.exception.object_id, "col:1")

    def test_malformed_docs_become_index_error(self):
        self.session.get.return_value = _response(
            {"response": {"numFound": 2, "docs": ["a:1", "a:2"]}}
        )
        with self.assertRaises(IndexQueryError):
            self.client.list_children("col:1", "alice")

    def test_no_relations_means_no_children(self):
        client = IndexClient("http://solr.local", [], session=self.session)
        self.assertEqual(client.count_children("col:1", "alice"), 0)
        self.session.get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
