import unittest
from unittest.mock import Mock, PropertyMock

from api.errors import RepositoryAccessError
from filters import ContentFilter, normalize_mimetype
from models import ExportRequest
from tests.fakes import FakeContentUnit


class TestNormalizeMimetype(unittest.TestCase):
    def test_parameters_and_case_are_dropped(self):
        self.assertEqual(normalize_mimetype("Text/HTML; charset=UTF-8"), "text/html")

    def test_missing_value(self):
        self.assertEqual(normalize_mimetype(None), "")


class TestContentFilter(unittest.TestCase):
    def setUp(self):
        self.filter = ContentFilter(["image/jpeg", "application/pdf"], ["TN", "RELS-EXT"])

    def test_allowed_type_is_included(self):
        self.assertTrue(self.filter.include(FakeContentUnit("OBJ", mimetype="image/jpeg")))

    def test_mimetype_comparison_ignores_parameters(self):
        unit = FakeContentUnit("OBJ", mimetype="application/PDF; version=1.7")
        self.assertTrue(self.filter.include(unit))

    def test_type_not_in_allow_list_is_excluded(self):
        self.assertFalse(self.filter.include(FakeContentUnit("OBJ", mimetype="text/xml")))

    def test_excluded_id_wins_over_allowed_type(self):
        self.assertFalse(self.filter.include(FakeContentUnit("TN", mimetype="image/jpeg")))

    def test_empty_allow_list_includes_nothing(self):
        with self.assertLogs(level="WARNING"):
            empty = ContentFilter([], [])
        self.assertFalse(empty.include(FakeContentUnit("OBJ", mimetype="image/jpeg")))

    def test_from_request_applies_exclude_list_to_allow_list(self):
        request = ExportRequest(
            identity="alice",
            start_ids=("A",),
            mimetypes=("image/jpeg", "image/png"),
            mimetypes_exclude=("image/png",),
            dsid_exclude=("TN",),
        )
        content_filter = ContentFilter.from_request(request)

        self.assertFalse(content_filter.include(FakeContentUnit("OBJ", mimetype="image/png")))
        self.assertTrue(content_filter.include(FakeContentUnit("OBJ", mimetype="image/jpeg")))
        self.assertFalse(content_filter.include(FakeContentUnit("TN", mimetype="image/jpeg")))

    def test_exclude_list_matches_regardless_of_case_and_parameters(self):
        request = ExportRequest(
            identity="alice",
            start_ids=("A",),
            mimetypes=("image/JPEG", "application/pdf"),
            mimetypes_exclude=("image/jpeg; quality=high",),
        )
        content_filter = ContentFilter.from_request(request)

        self.assertEqual(request.allowed_mimetypes, frozenset({"application/pdf"}))
        self.assertFalse(content_filter.include(FakeContentUnit("OBJ", mimetype="image/jpeg")))
        self.assertTrue(
            content_filter.include(FakeContentUnit("OBJ", mimetype="application/pdf"))
        )

    def test_unreadable_metadata_raises_access_error(self):
        unit = Mock()
        type(unit).mimetype = PropertyMock(side_effect=KeyError("mimeType"))
        unit.id = "OBJ"

        with self.assertRaises(RepositoryAccessError):
            self.filter.include(unit)


if __name__ == "__main__":
    unittest.main()
