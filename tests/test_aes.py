import os

import pytest

from hybridchat.common.errors import ChatError, DecryptionError
from hybridchat.common.protocol import BLOCK_SIZE, IV_SIZE, TAG_SIZE, EncryptedMessage
from hybridchat.crypto import aes
from hybridchat.crypto.aes import SessionKey


@pytest.fixture
def key():
    return aes.generate_session_key()


@pytest.mark.parametrize("plaintext", [
    "",
    "hello",
    "exactly 16 bytes",
    "ñandú, 日本語, emoji 🙂",
    "x" * 10_000,
])
def test_decrypt_inverts_encrypt(key, plaintext):
    assert aes.decrypt(key, aes.encrypt(key, plaintext)) == plaintext


def test_bytes_round_trip(key):
    data = os.urandom(333)
    assert aes.decrypt_bytes(key, aes.encrypt(key, data)) == data


def test_every_message_gets_a_fresh_iv(key):
    first = aes.encrypt(key, "same text")
    second = aes.encrypt(key, "same text")
    assert len(first.iv) == IV_SIZE
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext


@pytest.mark.parametrize("length,expected", [(0, 16), (15, 16), (16, 32), (17, 32)])
def test_ciphertext_is_padded_to_whole_blocks(key, length, expected):
    message = aes.encrypt(key, b"a" * length)
    assert len(message.ciphertext) == expected
    assert len(message.ciphertext) % BLOCK_SIZE == 0
    assert len(message.tag) == TAG_SIZE


def test_any_flipped_bit_is_detected(key):
    payload = aes.encrypt(key, "attack at dawn").to_payload()

    for bit in range(len(payload) * 8):
        tampered = bytearray(payload)
        tampered[bit // 8] ^= 1 << (bit % 8)
        with pytest.raises(DecryptionError):
            aes.decrypt(key, EncryptedMessage.from_payload(bytes(tampered)))


def test_wrong_key_is_detected(key):
    message = aes.encrypt(key, "for the right key only")
    with pytest.raises(DecryptionError):
        aes.decrypt(aes.generate_session_key(), message)


@pytest.mark.parametrize("cut", [1, 16, 40])
def test_truncated_payload_is_rejected(key, cut):
    payload = aes.encrypt(key, "some longer message text").to_payload()
    with pytest.raises(DecryptionError):
        aes.decrypt(key, EncryptedMessage.from_payload(payload[:-cut]))


def test_invalid_utf8_is_a_decryption_error(key):
    message = aes.encrypt(key, b"\xff\xfe\xfd")
    assert aes.decrypt_bytes(key, message) == b"\xff\xfe\xfd"
    with pytest.raises(DecryptionError):
        aes.decrypt(key, message)


def test_message_model_rejects_misaligned_ciphertext():
    with pytest.raises(ValueError):
        EncryptedMessage(iv=b"\x00" * 16, ciphertext=b"\x00" * 15, tag=b"\x00" * 32)


def test_session_keys_are_random_and_32_bytes():
    a, b = aes.generate_session_key(), aes.generate_session_key()
    assert len(a.raw) == 32
    assert a != b


def test_destroy_zeroes_the_key():
    key = SessionKey(b"\x42" * 32)
    key.destroy()
    assert key.destroyed
    assert key._buf == bytearray(32)
    with pytest.raises(ChatError):
        key.raw


def test_context_manager_destroys_key():
    with SessionKey(os.urandom(32)) as key:
        assert not key.destroyed
    assert key.destroyed


def test_session_key_must_be_32_bytes():
    with pytest.raises(ValueError):
        SessionKey(b"short")


def test_repr_does_not_leak_the_secret():
    key = SessionKey(b"\xab" * 32)
    assert "ab" not in repr(key).lower()


def test_payload_is_iv_ciphertext_then_tag(key):
    message = aes.encrypt(key, "hello")
    payload = message.to_payload()

    assert payload[:IV_SIZE] == message.iv
    assert payload[-TAG_SIZE:] == message.tag
    assert payload[IV_SIZE:-TAG_SIZE] == message.ciphertext
    assert len(message.ciphertext) % BLOCK_SIZE == 0
