"""Unit tests for credential merging and the credential store."""

import json
import os
import stat
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from gtasks_mcp.credentials import Credential, CredentialStore, merge_credentials
from gtasks_mcp.errors import PersistenceError


class TestMergeCredentials:
    """Tests for the refresh-token preserving merge."""

    def test_keeps_old_refresh_token_when_new_has_none(self) -> None:
        old = Credential(access_token="a1", refresh_token="r1")
        merged = merge_credentials(old, Credential(access_token="a2"))
        assert merged.access_token == "a2"
        assert merged.refresh_token == "r1"

    def test_new_refresh_token_wins(self) -> None:
        old = Credential(access_token="a1", refresh_token="r1")
        merged = merge_credentials(old, Credential(access_token="a2", refresh_token="r2"))
        assert merged.refresh_token == "r2"

    def test_no_refresh_token_anywhere(self) -> None:
        merged = merge_credentials(None, Credential(access_token="a1"))
        assert merged.refresh_token is None
        assert "refresh_token" not in merged.to_dict()

    def test_fields_set_on_new_override_old(self) -> None:
        old = Credential(access_token="a1", expiry_date=1000, scope="old", token_type="Bearer")
        new = Credential(access_token="a2", expiry_date=2000, scope="new")
        merged = merge_credentials(old, new)
        assert merged.expiry_date == 2000
        assert merged.scope == "new"
        assert merged.token_type == "Bearer"

    def test_unset_fields_on_new_keep_old_values(self) -> None:
        old = Credential(access_token="a1", expiry_date=1000, scope="tasks")
        merged = merge_credentials(old, Credential(access_token="a2"))
        assert merged.expiry_date == 1000
        assert merged.scope == "tasks"

    def test_extra_fields_survive(self) -> None:
        old = Credential(access_token="a1", extra={"id_token": "jwt"})
        merged = merge_credentials(old, Credential(access_token="a2"))
        assert merged.extra == {"id_token": "jwt"}


class TestCredential:
    def test_from_dict_round_trips_unknown_keys(self) -> None:
        data = {"access_token": "a", "expiry_date": 123, "id_token": "jwt"}
        credential = Credential.from_dict(data)
        assert credential.extra == {"id_token": "jwt"}
        assert credential.to_dict() == data

    def test_from_token_response_converts_expires_in(self) -> None:
        before = int(time.time() * 1000)
        credential = Credential.from_token_response(
            {"access_token": "a", "expires_in": 3600, "token_type": "Bearer"}
        )
        assert credential.expiry_date is not None
        assert before + 3_600_000 <= credential.expiry_date <= before + 3_700_000
        assert "expires_in" not in credential.to_dict()

    def test_is_expired(self) -> None:
        assert Credential(access_token="a", expiry_date=1_000).is_expired(now_ms=2_000)
        assert not Credential(access_token="a", expiry_date=10_000_000).is_expired(now_ms=0)
        # Inside the skew window counts as expired
        assert Credential(access_token="a", expiry_date=30_000).is_expired(now_ms=0)
        assert not Credential(access_token="a").is_expired()


class TestCredentialStore:
    """Tests for CredentialStore load/save."""

    def test_load_missing_file(self, store: CredentialStore) -> None:
        assert store.load() is None

    def test_load_corrupt_file_is_treated_as_absent(self, store: CredentialStore) -> None:
        store.path.write_text("{not json")
        assert store.load() is None

    @pytest.mark.parametrize("expiry", ["soon", {"x": 1}, [1, 2]])
    def test_load_malformed_field_is_treated_as_absent(
        self, store: CredentialStore, expiry: object
    ) -> None:
        store.path.write_text(json.dumps({"access_token": "a", "expiry_date": expiry}))
        assert store.load() is None

    def test_save_over_malformed_field(self, store: CredentialStore) -> None:
        store.path.write_text(json.dumps({"access_token": "a", "expiry_date": {"x": 1}}))
        merged = store.save(Credential(access_token="a2"))
        assert merged.access_token == "a2"
        assert json.loads(store.path.read_text()) == {"access_token": "a2"}

    def test_load_non_object_is_treated_as_absent(self, store: CredentialStore) -> None:
        store.path.write_text(json.dumps(["a", "b"]))
        assert store.load() is None

    def test_load_without_access_token_is_treated_as_absent(
        self, store: CredentialStore
    ) -> None:
        store.path.write_text(json.dumps({"refresh_token": "r1"}))
        assert store.load() is None

    def test_sequential_saves_keep_refresh_token(self, store: CredentialStore) -> None:
        store.save(Credential(access_token="a1", refresh_token="r1"))
        merged = store.save(Credential(access_token="a2"))

        assert merged.access_token == "a2"
        assert merged.refresh_token == "r1"
        assert json.loads(store.path.read_text()) == {"access_token": "a2", "refresh_token": "r1"}

    def test_save_replaces_refresh_token_when_given(self, store: CredentialStore) -> None:
        store.save(Credential(access_token="a1", refresh_token="r1"))
        store.save(Credential(access_token="a2", refresh_token="r2"))
        loaded = store.load()
        assert loaded is not None
        assert loaded.refresh_token == "r2"

    def test_save_over_corrupt_file(self, store: CredentialStore) -> None:
        store.path.write_text("garbage")
        merged = store.save(Credential(access_token="a1"))
        assert merged.access_token == "a1"
        assert store.load() == merged

    def test_save_is_owner_only_and_leaves_no_temp_files(self, store: CredentialStore) -> None:
        store.save(Credential(access_token="a1", refresh_token="r1"))

        mode = stat.S_IMODE(os.stat(store.path).st_mode)
        assert mode == stat.S_IRUSR | stat.S_IWUSR
        assert [p.name for p in store.path.parent.iterdir() if p.suffix == ".tmp"] == []

    def test_save_creates_parent_directories(self, tmp_path: Path) -> None:
        store = CredentialStore(tmp_path / "nested" / "dir" / "credentials.json")
        store.save(Credential(access_token="a1"))
        assert store.path.exists()

    def test_failed_write_raises_and_keeps_previous_file(self, store: CredentialStore) -> None:
        store.save(Credential(access_token="a1", refresh_token="r1"))

        with patch("gtasks_mcp.credentials.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError):
                store.save(Credential(access_token="a2"))

        assert json.loads(store.path.read_text())["access_token"] == "a1"
        assert [p.name for p in store.path.parent.iterdir() if p.suffix == ".tmp"] == []
