import json
from pathlib import Path

import pytest
import yaml

from gateway_openapi.errors import GatewaySpecError
from gateway_openapi.writer import dump_document, write_document

SHARED = {"type": "apiKey", "name": "x-api-key", "in": "header"}
DOCUMENT = {
    "swagger": "2.0",
    "info": {"title": "Café gateway", "version": "1.0.0"},
    "paths": {"/a": {"get": {"security": [{"api_key": []}]}}},
    "securityDefinitions": {"api_key": SHARED, "copy": SHARED},
}


class TestDump:
    def test_yaml_keeps_key_order(self):
        text = dump_document(DOCUMENT)
        assert text.index("swagger:") < text.index("info:") < text.index("paths:")
        assert yaml.safe_load(text) == DOCUMENT

    def test_no_anchors_for_shared_objects(self):
        text = dump_document(DOCUMENT)
        assert "&id" not in text
        assert "*id" not in text

    def test_unicode_is_written_as_is(self):
        assert "Café gateway" in dump_document(DOCUMENT)

    def test_deterministic(self):
        assert dump_document(DOCUMENT) == dump_document(json.loads(json.dumps(DOCUMENT)))


class TestWriteDocument:
    def test_yaml_file(self, tmp_path):
        path = write_document(DOCUMENT, tmp_path / "out" / "gateway.yaml")
        assert path == (tmp_path / "out" / "gateway.yaml").resolve()
        assert yaml.safe_load(path.read_text(encoding="utf-8")) == DOCUMENT

    def test_json_by_suffix(self, tmp_path):
        path = write_document(DOCUMENT, tmp_path / "gateway.JSON")
        assert json.loads(path.read_text(encoding="utf-8")) == DOCUMENT

    def test_rewrite_is_identical(self, tmp_path):
        output = tmp_path / "gateway.yaml"
        first = write_document(DOCUMENT, output).read_bytes()
        second = write_document(DOCUMENT, output).read_bytes()
        assert first == second

    def test_unwritable_destination(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(GatewaySpecError, match="Error writing"):
            write_document(DOCUMENT, Path(blocker) / "gateway.yaml")
