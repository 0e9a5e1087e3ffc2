"""Adversarial tests — tampered, malformed and hostile manifests.

These tests verify that:
1. Extra or misspelled keys are rejected at every object level
2. Type confusion in dependency records is caught by the schema
3. A tampered remote manifest aborts propagation before any stamp is written
4. A tampered local manifest cannot be resumed by a different build
"""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from artipub.core import schema
from artipub.core.errors import (
    IdentityMismatchError,
    PublishError,
    SchemaError,
    UnknownDependencyTypeError,
)
from artipub.core.retention import RetentionPropagator
from artipub.core.session import PublishSession
from artipub.models.manifest import BuildArtifactDependency, GenericFileDependency
from artipub.models.session import PublishMode

MD5 = "d41d8cd98f00b204e9800998ecf8427e"


@pytest.fixture
def doc(make_manifest) -> dict:
    return make_manifest(dependencies=[GenericFileDependency(url="deps/a.bin")]).to_document()


class TestInjectedKeys:
    @pytest.mark.parametrize(
        "section",
        [None, "build-info", "retention"],
    )
    def test_unknown_key_rejected(self, doc, section):
        target = doc if section is None else doc[section]
        target["keep-forever"] = True
        with pytest.raises(SchemaError, match="keep-forever"):
            schema.validate(doc)

    def test_unknown_key_on_file_record(self, doc):
        doc["files"] = [{"path": "a", "md5": MD5, "owner": "root"}]
        with pytest.raises(SchemaError):
            schema.validate(doc)

    def test_key_from_other_variant_rejected(self, doc):
        doc["dependencies"][0]["docker-tag"] = "latest"
        violations = schema.manifest_violations(doc)
        assert any("docker-tag" in message for _, message in violations)

    def test_negative_retention_rejected(self, doc):
        doc["retention"]["initial-retention-time-days"] = -1
        assert schema.manifest_violations(doc)

    def test_boolean_is_not_a_schema_version(self, doc):
        doc["schema-version"] = True
        assert schema.manifest_violations(doc)


class TestTypeConfusion:
    def test_dependency_type_must_be_string_tag(self, doc):
        doc["dependencies"][0]["type"] = ["generic-file"]
        assert schema.manifest_violations(doc)

    def test_empty_url_rejected(self, doc):
        doc["dependencies"][0]["generic-file-url"] = ""
        assert schema.manifest_violations(doc)

    def test_unknown_type_has_its_own_error(self, doc):
        doc["dependencies"].append({"type": "helm-chart", "chart": "x"})
        with pytest.raises(UnknownDependencyTypeError, match="helm-chart"):
            schema.check_dependency_types(doc, source="remote")

    def test_not_json(self):
        with pytest.raises(SchemaError) as exc_info:
            schema.parse(b"{not json")
        assert exc_info.value.violations[0][0] == "$"


class TestTamperedRemoteManifest:
    """A nested manifest that fails validation must stop propagation cold."""

    @pytest.fixture
    def propagator(self, store, watermark):
        return RetentionPropagator(store, watermark, max_workers=4)

    def _tamper(self, store, folder: str, mutate) -> None:
        key = f"{folder}/manifest.json"
        doc = json.loads(store.objects[key])
        mutate(doc)
        store.objects[key] = json.dumps(doc).encode()

    def test_extra_key_in_child_manifest(self, store, publish_remote, propagator):
        folder = publish_remote("builds/lib/1", dependencies=[GenericFileDependency(url="deps/x")])
        self._tamper(store, folder, lambda d: d["build-info"].update({"injected": "1"}))
        with pytest.raises(SchemaError):
            propagator.propagate([BuildArtifactDependency(url=folder)])
        assert store.writes() == []

    def test_unknown_type_in_child_manifest(self, store, publish_remote, propagator):
        folder = publish_remote("builds/lib/2")
        self._tamper(
            store, folder, lambda d: d.setdefault("dependencies", []).append({"type": "npm"})
        )
        with pytest.raises(UnknownDependencyTypeError):
            propagator.propagate([BuildArtifactDependency(url=folder)])
        assert store.writes() == []

    def test_garbage_stamp_aborts(self, store, propagator):
        store.properties["deps/x"] = {"keep-until": "next tuesday"}
        with pytest.raises(PublishError, match="next tuesday"):
            propagator.propagate([GenericFileDependency(url="deps/x")])
        assert store.writes() == []

    def test_far_future_stamp_is_left_alone(self, store, propagator, now):
        store.set_stamp("deps/x", now + timedelta(days=3650))
        report = propagator.propagate([GenericFileDependency(url="deps/x")])
        assert report.updated == []


class TestTamperedLocalManifest:
    def test_edited_build_number_rejected(self, store, build_info, make_session_config, make_manifest, tmp_path):
        local = tmp_path / "manifest.json"
        local.write_bytes(schema.serialize(make_manifest(build_no="41")))
        config = make_session_config(mode=PublishMode.FINAL, local_manifest=local)
        with pytest.raises(IdentityMismatchError, match="build-no"):
            PublishSession(config, build_info, store).run()
        assert store.calls == []
        assert local.exists()

    def test_edited_retention_rejected(self, store, build_info, make_session_config, make_manifest, tmp_path):
        local = tmp_path / "manifest.json"
        local.write_bytes(schema.serialize(make_manifest(days=3650)))
        config = make_session_config(mode=PublishMode.INCREMENTAL, local_manifest=local)
        with pytest.raises(IdentityMismatchError, match="initial-retention-time-days"):
            PublishSession(config, build_info, store).run()

    def test_injected_key_in_local_manifest(self, store, build_info, make_session_config, make_manifest, tmp_path):
        local = tmp_path / "manifest.json"
        doc = make_manifest().to_document()
        doc["upload-to"] = "elsewhere"
        local.write_text(json.dumps(doc))
        config = make_session_config(mode=PublishMode.FINAL, local_manifest=local)
        with pytest.raises(SchemaError):
            PublishSession(config, build_info, store).run()
