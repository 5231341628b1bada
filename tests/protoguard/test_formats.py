import pytest
import schemas

from protoguard import formats


@pytest.mark.parametrize(
    "value,expected",
    [
        ("ada@example.com", True),
        ("first.last+tag@sub.example.org", True),
        ("no-at-sign", False),
        ("two@@example.com", False),
        ("a@-example.com", False),
        ("Ada <ada@example.com>", False),
        ("x" * 65 + "@example.com", False),
    ],
)
def test_is_email(value, expected):
    assert formats.is_email(value) is expected


@pytest.mark.parametrize(
    "value,expected",
    [
        ("example.com", True),
        ("example.com.", True),
        ("localhost", True),
        ("a-b.c-d.io", True),
        ("-bad.com", False),
        ("bad-.com", False),
        ("under_score.com", False),
        ("127.0.0.1", False),
        ("", False),
        ("a" * 64 + ".com", False),
    ],
)
def test_is_hostname(value, expected):
    assert formats.is_hostname(value) is expected


def test_is_ip():
    assert formats.is_ip("192.168.0.1")
    assert formats.is_ip("::1")
    assert formats.is_ip("192.168.0.1", 4)
    assert not formats.is_ip("192.168.0.1", 6)
    assert formats.is_ip("fe80::1", 6)
    assert not formats.is_ip("256.0.0.1")
    assert not formats.is_ip("example.com")


def test_is_ip_prefix():
    assert formats.is_ip_prefix("10.0.0.0/8")
    assert formats.is_ip_prefix("10.0.0.1/8")
    assert not formats.is_ip_prefix("10.0.0.1/8", strict=True)
    assert formats.is_ip_prefix("2001:db8::/32", 6)
    assert not formats.is_ip_prefix("10.0.0.0/8", 6)
    assert not formats.is_ip_prefix("10.0.0.0")


@pytest.mark.parametrize(
    "value,expected",
    [
        ("https://example.com/path?q=1#frag", True),
        ("mailto:ada@example.com", True),
        ("urn:isbn:0451450523", True),
        ("http://[::1]:8080/", True),
        ("/relative/path", False),
        ("1http://example.com", False),
        ("http://exa mple.com", False),
        ("http://example.com/%zz", False),
    ],
)
def test_is_uri(value, expected):
    assert formats.is_uri(value) is expected


def test_is_uri_ref():
    assert formats.is_uri_ref("https://example.com")
    assert formats.is_uri_ref("/relative/path?x=1")
    assert formats.is_uri_ref("../up")
    assert not formats.is_uri_ref("bad path")


def test_is_uuid():
    assert formats.is_uuid("123e4567-e89b-12d3-a456-426614174000")
    assert formats.is_uuid("123E4567-E89B-12D3-A456-426614174000")
    assert not formats.is_uuid("123e4567e89b12d3a456426614174000")
    assert not formats.is_uuid("not-a-uuid")


def test_is_address():
    assert formats.is_address("example.com")
    assert formats.is_address("10.1.2.3")
    assert formats.is_address("::1")
    assert not formats.is_address("exa mple")


@pytest.mark.parametrize(
    "value,port_required,expected",
    [
        ("example.com:8080", True, True),
        ("127.0.0.1:443", True, True),
        ("[::1]:443", True, True),
        ("example.com", True, False),
        ("example.com", False, True),
        ("[::1]", False, True),
        ("example.com:65536", True, False),
        ("example.com:08", True, False),
        ("::1:443", True, False),
    ],
)
def test_is_host_and_port(value, port_required, expected):
    assert formats.is_host_and_port(value, port_required) is expected


def test_numeric_helpers():
    assert formats.is_nan(float("nan"))
    assert not formats.is_nan(1.0)
    assert formats.is_inf(float("inf"))
    assert formats.is_inf(float("-inf"), -1)
    assert not formats.is_inf(float("-inf"), 1)
    assert not formats.is_inf(0.0)


def test_matches():
    assert formats.matches("abc123", "[0-9]+")
    assert formats.matches(b"abc", "^a")
    assert not formats.matches(b"\xff", ".")


def test_unique():
    assert formats.unique([1, 2, 3])
    assert not formats.unique(["a", "b", "a"])
    assert formats.unique([])


def test_has():
    msg = schemas.Account(nickname="x")
    assert formats.has(msg, "nickname")
    assert not formats.has(msg, "limit")
    assert not formats.has(msg, "id")
    msg.id = ""
    assert formats.has(msg, "id")

    assert not formats.has(schemas.Plain(), "tags")
    assert formats.has(schemas.Plain(tags=["a"]), "tags")

    with pytest.raises(ValueError):
        formats.has(msg, "missing")


def test_functions_are_read_only():
    with pytest.raises(TypeError):
        formats.FUNCTIONS["eval"] = eval  # type: ignore
