"""
Tests for attachment reference parsing and normalization.
"""
import json

import pytest

from app.services.attachment_refs import (
    BlobRef,
    FilesystemRef,
    filesystem_paths,
    merge_attachment_lists,
    normalize_attachment_list,
    orphaned_refs,
    parse_ref,
    parse_refs,
)

BLOB_ID = "65a1f0c2e4b0a1b2c3d4e5f6"
PATH = "/uploads/task_1700000000000_abc1234/1700000000001_invoice.pdf"


class TestNormalizeAttachmentList:
    """Every accepted shape ends up as a flat list of non-blank strings."""

    def test_normalized_list_is_unchanged(self):
        values = [PATH, BLOB_ID]
        assert normalize_attachment_list(values) == values
        assert normalize_attachment_list(normalize_attachment_list(values)) == values

    @pytest.mark.parametrize("shape", [
        [PATH, BLOB_ID],
        json.dumps([PATH, BLOB_ID]),
        [json.dumps([PATH]), BLOB_ID],
    ])
    def test_shapes_agree(self, shape):
        assert normalize_attachment_list(shape) == [PATH, BLOB_ID]

    def test_bare_string_becomes_single_item(self):
        assert normalize_attachment_list(PATH) == [PATH]
        assert normalize_attachment_list(json.dumps(PATH)) == [PATH]

    def test_blank_entries_are_dropped(self):
        assert normalize_attachment_list(["", "  ", PATH, None]) == [PATH]
        assert normalize_attachment_list(None) == []
        assert normalize_attachment_list("") == []
        assert normalize_attachment_list("[]") == []

    def test_entries_are_trimmed(self):
        assert normalize_attachment_list([f"  {BLOB_ID} "]) == [BLOB_ID]

    def test_malformed_json_is_kept_as_text(self):
        assert normalize_attachment_list("[not json") == ["[not json"]


class TestParseRef:
    def test_hex_id_is_blob(self):
        assert parse_ref(BLOB_ID) == BlobRef(BLOB_ID)
        assert parse_ref(BLOB_ID.upper()) == BlobRef(BLOB_ID.upper())

    def test_anything_else_is_path(self):
        assert parse_ref(PATH) == FilesystemRef(PATH)
        # 23 characters is not a blob id
        assert parse_ref(BLOB_ID[:-1]) == FilesystemRef(BLOB_ID[:-1])

    def test_parse_refs_and_paths(self):
        refs = parse_refs(json.dumps([PATH, BLOB_ID]))
        assert refs == [FilesystemRef(PATH), BlobRef(BLOB_ID)]
        assert filesystem_paths(refs) == [PATH]
        assert [str(ref) for ref in refs] == [PATH, BLOB_ID]


class TestMergeAndOrphans:
    def test_merge_keeps_order_and_drops_duplicates(self):
        merged = merge_attachment_lists([PATH], [BLOB_ID, PATH], "/uploads/tasks/new.pdf")
        assert merged == [PATH, BLOB_ID, "/uploads/tasks/new.pdf"]

    def test_orphans_are_the_set_difference(self):
        other = "/uploads/tasks/old.pdf"
        orphans = orphaned_refs([PATH, BLOB_ID, other], [PATH])
        assert orphans == [BlobRef(BLOB_ID), FilesystemRef(other)]

    def test_no_orphans_when_nothing_removed(self):
        assert orphaned_refs(PATH, [PATH, BLOB_ID]) == []
