import pytest

from publishdesk.core.config import settings
from publishdesk.core.security import decrypt_temp_data, decrypt_token, encrypt_temp_data, encrypt_token
from publishdesk.integrations.oauth_state import open_capability, seal_capability


def test_encrypt_decrypt_round_trip_uses_iv_tag_ciphertext_layout():
    sealed = encrypt_token("ya29.access-token")

    iv_hex, tag_hex, ciphertext_hex = sealed.split(":")
    assert len(iv_hex) == 32
    assert len(tag_hex) == 32
    assert ciphertext_hex
    assert "ya29" not in sealed
    assert decrypt_token(sealed) == "ya29.access-token"


def test_encrypt_uses_fresh_iv_each_time():
    assert encrypt_token("same-token") != encrypt_token("same-token")


def test_plaintext_and_unrecognized_values_are_returned_unchanged():
    assert decrypt_token("legacy-plaintext-token") == "legacy-plaintext-token"
    assert decrypt_token("a:b") == "a:b"


def test_tampered_ciphertext_is_returned_unchanged():
    sealed = encrypt_token("refresh-token")
    iv_hex, tag_hex, ciphertext_hex = sealed.split(":")
    flipped = "0" if ciphertext_hex[-1] != "0" else "1"
    tampered = f"{iv_hex}:{tag_hex}:{ciphertext_hex[:-1]}{flipped}"

    assert decrypt_token(tampered) == tampered


def test_missing_key_stores_plaintext(monkeypatch):
    monkeypatch.setattr(settings, "token_encryption_key", None)

    assert encrypt_token("plain") == "plain"
    assert decrypt_token("plain") == "plain"


def test_malformed_key_is_rejected(monkeypatch):
    monkeypatch.setattr(settings, "token_encryption_key", "abc123")

    with pytest.raises(ValueError):
        encrypt_token("token")


def test_temp_data_round_trip_and_garbage():
    sealed = encrypt_temp_data({"channels": [{"id": "UC1"}], "count": 1})

    assert decrypt_temp_data(sealed) == {"channels": [{"id": "UC1"}], "count": 1}
    assert decrypt_temp_data("not-json") is None


def test_capability_expires():
    assert open_capability(seal_capability({"tokens": {"access_token": "a"}}, ttl_seconds=60))["tokens"] == {
        "access_token": "a"
    }
    assert open_capability(seal_capability({"tokens": {}}, ttl_seconds=-1)) is None
    assert open_capability(None) is None
    assert open_capability("garbage") is None
