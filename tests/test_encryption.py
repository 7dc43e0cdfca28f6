"""AES-GCM 復号のユニットテスト"""

import pytest
from cryptography.exceptions import InvalidTag
from k1s0_prefab.encryption import AesGcmDecrypter, decrypt_value, encrypt_value, generate_key


def test_encrypt_then_decrypt() -> None:
    """暗号化した値を同じキーで復号できる。"""
    key = generate_key()
    payload = encrypt_value(key, "hello world")
    assert payload.count("--") == 2
    assert decrypt_value(key, payload) == "hello world"


def test_decrypt_accepts_uppercase_hex() -> None:
    """大文字の 16 進数も受け付ける。"""
    key = generate_key()
    payload = encrypt_value(key, "upper")
    assert decrypt_value(key.upper(), payload.upper()) == "upper"


def test_wrong_key_raises_invalid_tag() -> None:
    """誤ったキーでは InvalidTag。"""
    payload = encrypt_value(generate_key(), "secret")
    with pytest.raises(InvalidTag):
        decrypt_value(generate_key(), payload)


def test_tampered_ciphertext_raises() -> None:
    """改ざんされた暗号文は InvalidTag。"""
    key = generate_key()
    ciphertext, iv, tag = encrypt_value(key, "secret").split("--")
    flipped = f"{int(ciphertext[:2], 16) ^ 0xFF:02x}{ciphertext[2:]}"
    with pytest.raises(InvalidTag):
        decrypt_value(key, "--".join((flipped, iv, tag)))


def test_malformed_payload() -> None:
    """区切りが不足した値は ValueError。"""
    with pytest.raises(ValueError):
        decrypt_value(generate_key(), "abcd--ef")


def test_decrypter_class() -> None:
    """AesGcmDecrypter は decrypt_value に委譲する。"""
    key = generate_key()
    assert AesGcmDecrypter().decrypt_value(key, encrypt_value(key, "x")) == "x"
