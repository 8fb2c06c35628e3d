"""Tests for seed-file loading of forms, credentials and credential types."""

import json

import pytest

from app.stores import CredentialRecord, InMemoryCredentialStore, InMemoryFormStore
from app.verification.credential_types import BUILTIN_CREDENTIAL_TYPES, CredentialTypeRegistry


class TestFormStore:
    @pytest.mark.asyncio
    async def test_from_file(self, tmp_path):
        path = tmp_path / "forms.json"
        path.write_text(json.dumps([
            {"id": 7, "name": "Intake", "formSchema": {"components": []}},
            {"name": "missing id"},
        ]))

        store = InMemoryFormStore.from_file(str(path))

        form = await store.get_form("7")
        assert form.name == "Intake"
        assert await store.get_form(8) is None

    def test_invalid_json_yields_empty_store(self, tmp_path):
        path = tmp_path / "forms.json"
        path.write_text("{not json")
        assert InMemoryFormStore.from_file(str(path))._forms == {}

    def test_no_path(self):
        assert InMemoryFormStore.from_file(None)._forms == {}


class TestCredentialRecord:
    def test_bundle_references_deduplicated(self):
        record = CredentialRecord(
            id=1,
            label="Lawyer",
            brandingMetadata={
                "ocaBundleUrl": "bundles/Lawyer/Prod",
                "ocaBundleUrls": ["bundles/Lawyer/Prod", " bundles/Lawyer/Test ", 5],
            },
        )
        assert record.bundle_references == ["bundles/Lawyer/Prod", "bundles/Lawyer/Test"]

    @pytest.mark.parametrize("value, expected", [("acme", "acme"), (" acme ", "acme"), ("", None), (7, None), (None, None)])
    def test_oca_repository_id(self, value, expected):
        record = CredentialRecord(id=1, label="x", brandingMetadata={"ocaRepositoryId": value})
        assert record.oca_repository_id == expected

    def test_issuer_name_from_metadata(self):
        record = CredentialRecord(id=1, label="X", brandingMetadata={"issuerName": "LSBC"})
        assert record.issuer_name == "LSBC"

    @pytest.mark.asyncio
    async def test_verifier_overrides_keyed_by_label(self):
        store = InMemoryCredentialStore([
            CredentialRecord(id=1, label="Badge", verifierSchemaId=3, verifierCredDefId=4),
            CredentialRecord(id=2, label="Partial", verifierSchemaId=3),
        ])

        overrides = await store.verifier_overrides()

        assert list(overrides) == ["Badge"]
        assert overrides["Badge"].cred_def_id == 4


class TestCredentialTypeRegistry:
    def test_builtins(self):
        registry = CredentialTypeRegistry.load()
        assert len(registry) == len(BUILTIN_CREDENTIAL_TYPES)
        assert "Unverified Person" in registry

    def test_file_extends_and_replaces(self, tmp_path):
        path = tmp_path / "types.json"
        path.write_text(json.dumps([
            {
                "name": "Unverified Person",
                "issuerDid": "NewDid",
                "schemaId": "NewDid:2:person:2.0",
                "schemaName": "person",
                "schemaVersion": "2.0",
                "credDefId": "NewDid:3:CL:1:default",
            },
            {
                "name": "Library Card",
                "issuerDid": "Lib",
                "schemaId": "Lib:2:library:1.0",
                "schemaName": "library",
                "credDefId": "Lib:3:CL:2:default",
            },
        ]))

        registry = CredentialTypeRegistry.load(str(path))

        assert registry.get("Unverified Person").issuer_did == "NewDid"
        assert registry.get("Library Card").schema_version == "1.0"
        assert len(registry) == len(BUILTIN_CREDENTIAL_TYPES) + 1

    def test_bad_file_keeps_builtins(self, tmp_path):
        path = tmp_path / "types.json"
        path.write_text("[{}]")
        assert len(CredentialTypeRegistry.load(str(path))) == len(BUILTIN_CREDENTIAL_TYPES)
