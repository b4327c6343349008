"""Unit tests for the OAuth client identity loader."""

import json
from pathlib import Path

import pytest

from gtasks_mcp.client_config import DEFAULT_REDIRECT_URI, ClientConfigLoader, ClientIdentity
from gtasks_mcp.errors import ConfigurationError


def write_keys(tmp_path: Path, data: object) -> Path:
    path = tmp_path / "keys.json"
    path.write_text(json.dumps(data))
    return path


class TestClientConfigLoader:
    @pytest.mark.parametrize("wrapper", ["installed", "web"])
    def test_wrapped_key_file(self, tmp_path: Path, wrapper: str) -> None:
        path = write_keys(
            tmp_path,
            {
                wrapper: {
                    "client_id": "cid",
                    "client_secret": "secret",
                    "redirect_uris": ["http://localhost:8080/cb", "urn:ietf:wg:oauth:2.0:oob"],
                }
            },
        )
        identity = ClientConfigLoader(path).load()
        assert identity == ClientIdentity("cid", "secret", "http://localhost:8080/cb")

    def test_flat_key_file(self, tmp_path: Path) -> None:
        path = write_keys(
            tmp_path,
            {"client_id": "cid", "client_secret": "secret", "redirect_uris": ["http://x"]},
        )
        assert ClientConfigLoader(path).load().redirect_uri == "http://x"

    def test_missing_redirect_uris_uses_default(self, tmp_path: Path) -> None:
        path = write_keys(tmp_path, {"installed": {"client_id": "cid", "client_secret": "s"}})
        assert ClientConfigLoader(path).load().redirect_uri == DEFAULT_REDIRECT_URI

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            ClientConfigLoader(tmp_path / "nope.json").load()

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "keys.json"
        path.write_text("{")
        with pytest.raises(ConfigurationError):
            ClientConfigLoader(path).load()

    @pytest.mark.parametrize(
        "keys",
        [
            {"installed": {"client_secret": "s"}},
            {"web": {"client_id": "cid"}},
            {"client_id": "", "client_secret": "s"},
        ],
    )
    def test_missing_client_fields(self, tmp_path: Path, keys: dict) -> None:
        path = write_keys(tmp_path, keys)
        with pytest.raises(ConfigurationError, match="client_id or client_secret"):
            ClientConfigLoader(path).load()

    def test_result_is_cached(self, tmp_path: Path) -> None:
        path = write_keys(tmp_path, {"installed": {"client_id": "cid", "client_secret": "s"}})
        loader = ClientConfigLoader(path)
        first = loader.load()

        path.unlink()

        assert loader.load() is first
