"""Unit tests for connection descriptor encryption."""

import base64
import hashlib
import json

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from vulcan.lib.config import Settings
from vulcan.lib.encryption import decrypt, derive_key, encrypt, normalize_connection_json
from vulcan.lib.errors import ConfigurationError, InvalidConnectionError


def test_round_trip_reproduces_object(connection_data):
    blob = encrypt(json.dumps(connection_data))

    assert json.loads(decrypt(blob)) == connection_data


def test_round_trip_adds_empty_database_when_undefined(connection_data):
    del connection_data["database"]

    decrypted = json.loads(decrypt(encrypt(json.dumps(connection_data))))

    assert decrypted == {**connection_data, "database": ""}


def test_null_database_is_normalized():
    assert json.loads(normalize_connection_json('{"host": "h", "database": null}')) == {
        "host": "h",
        "database": "",
    }


def test_random_iv_gives_different_blobs(connection_data):
    text = json.dumps(connection_data)

    assert encrypt(text) != encrypt(text)


def test_wire_format_is_iv_then_aes_cbc(connection_data):
    """base64(IV || AES-256-CBC(PKCS7(json))) with key = SHA-256(passphrase)."""
    settings = Settings(encryption_key="wire-format-key")
    raw = base64.b64decode(encrypt(json.dumps(connection_data), settings=settings))

    iv, ciphertext = raw[:16], raw[16:]
    key = hashlib.sha256(b"wire-format-key").digest()
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    plaintext = unpadder.update(padded) + unpadder.finalize()

    assert json.loads(plaintext) == connection_data
    assert derive_key("wire-format-key") == key


@pytest.mark.parametrize("text", ["not json", "[1, 2]", '"a string"'])
def test_encrypt_requires_json_object(text):
    with pytest.raises(InvalidConnectionError):
        encrypt(text)


def test_missing_key_is_configuration_error(connection_data):
    settings = Settings(encryption_key=None)

    with pytest.raises(ConfigurationError) as exc_info:
        encrypt(json.dumps(connection_data), settings=settings)
    assert exc_info.value.status_code == 503

    with pytest.raises(ConfigurationError):
        decrypt("AAAA", settings=settings)


def test_wrong_key_fails(connection_data):
    blob = encrypt(json.dumps(connection_data), settings=Settings(encryption_key="one"))

    with pytest.raises(InvalidConnectionError):
        decrypt(blob, settings=Settings(encryption_key="two"))


def test_previous_key_still_decrypts(connection_data, caplog):
    blob = encrypt(json.dumps(connection_data), settings=Settings(encryption_key="old"))
    rotated = Settings(encryption_key="new", previous_encryption_keys=["older", "old"])

    assert json.loads(decrypt(blob, settings=rotated)) == connection_data
    assert "retired key" in caplog.text


@pytest.mark.parametrize("blob", ["", "abc", base64.b64encode(b"x" * 20).decode()])
def test_malformed_blob_is_invalid_connection(blob):
    with pytest.raises(InvalidConnectionError):
        decrypt(blob)
