"""
Tests for Anthropic credential resolution.
"""

import json

import pytest

from credentials import CredentialsError, load_credentials


def write_credentials(home, payload):
    d = home / ".claude"
    d.mkdir()
    (d / ".credentials.json").write_text(payload if isinstance(payload, str) else json.dumps(payload))


def test_api_key_wins(tmp_path):
    write_credentials(tmp_path, {"claudeAiOauth": {"accessToken": "tok"}})
    creds = load_credentials(env={"ANTHROPIC_API_KEY": "sk-test"}, home=str(tmp_path))
    assert creds.api_key == "sk-test"
    assert creds.access_token == ""
    assert not creds.is_oauth()


def test_oauth_from_credentials_file(tmp_path):
    write_credentials(tmp_path, {
        "claudeAiOauth": {"accessToken": "at", "refreshToken": "rt", "expiresAt": 1760000000000},
    })
    creds = load_credentials(env={}, home=str(tmp_path))
    assert creds.access_token == "at"
    assert creds.refresh_token == "rt"
    assert creds.expires_at == 1760000000000
    assert creds.is_oauth()


def test_missing_file(tmp_path):
    with pytest.raises(CredentialsError, match="not found"):
        load_credentials(env={}, home=str(tmp_path))


@pytest.mark.parametrize("payload, message", [
    ("{not json", "malformed credentials file"),
    ({"other": {}}, "missing claudeAiOauth"),
    ({"claudeAiOauth": "nope"}, "malformed OAuth section"),
    ({"claudeAiOauth": {"accessToken": ""}}, "empty accessToken"),
])
def test_bad_credentials_file(tmp_path, payload, message):
    write_credentials(tmp_path, payload)
    with pytest.raises(CredentialsError, match=message):
        load_credentials(env={}, home=str(tmp_path))
