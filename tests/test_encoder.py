import pytest

from shortlink.core.encoder import BASE36, BASE64_URLSAFE, decode, encode, hash_encode


def test_zero_encodes_to_zero_symbol():
    assert encode(0) == "0"
    assert encode(0, BASE64_URLSAFE) == "A"


def test_base36_boundaries():
    assert encode(35) == "z"
    assert encode(36) == "10"
    assert encode(35) != encode(36)
    assert decode("10") == 36


def test_encode_is_deterministic_and_decodable():
    for value in (1, 61, 62, 1295, 1296, 10 ** 12):
        assert encode(value) == encode(value)
        assert decode(encode(value)) == value
        assert decode(encode(value, BASE64_URLSAFE), BASE64_URLSAFE) == value


def test_encode_is_injective_over_a_range():
    codes = {encode(value) for value in range(5000)}
    assert len(codes) == 5000
    assert all(set(code) <= set(BASE36) for code in codes)


def test_negative_value_rejected():
    with pytest.raises(ValueError):
        encode(-1)


def test_decode_rejects_foreign_symbols():
    with pytest.raises(ValueError):
        decode("ab+c")
    with pytest.raises(ValueError):
        decode("")


def test_hash_encode_truncates_digest():
    code = hash_encode("http://example.com", 8)
    assert len(code) == 8
    assert code == hash_encode("http://example.com", 8)
    assert hash_encode("http://example.com", 12).startswith(code)
    assert set(code) <= set(BASE64_URLSAFE)


def test_hash_encode_differs_per_input():
    assert hash_encode("http://example1.com", 8) != hash_encode("http://example2.com", 8)


def test_hash_encode_length_bounds():
    assert len(hash_encode("x", 43)) == 43
    with pytest.raises(ValueError):
        hash_encode("x", 0)
    with pytest.raises(ValueError):
        hash_encode("x", 44)
