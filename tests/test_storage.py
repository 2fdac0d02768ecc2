import pytest

from storage import ObjectStorage, StorageError, make_key


@pytest.fixture
def storage(tmp_path):
    return ObjectStorage(str(tmp_path), "test-secret", ttl_seconds=60)


def test_make_key_is_unique_and_safe():
    key = make_key("logos", "../../My Logo (1).png")
    prefix, name = key.split("/")
    assert prefix == "logos"
    assert name.endswith("-My-Logo-1-.png")
    assert ".." not in key
    assert make_key("needs", None).endswith("-upload")


def test_public_upload_returns_url(storage, tmp_path):
    url = storage.upload("images", "logos/1-logo.png", b"png")
    assert url == "/files/images/logos/1-logo.png"
    assert (tmp_path / "images" / "logos" / "1-logo.png").read_bytes() == b"png"
    assert storage.open_public("images", "logos/1-logo.png").read_bytes() == b"png"


def test_private_upload_needs_signed_link(storage):
    key = storage.upload("documents", "registrations/1/1-cert.pdf", b"%PDF")
    assert key == "registrations/1/1-cert.pdf"
    with pytest.raises(StorageError):
        storage.open_public("documents", key)

    url = storage.signed_url(key)
    token = url.rsplit("/", 1)[-1]
    assert storage.resolve_signed(token).read_bytes() == b"%PDF"


def test_bad_tokens_and_keys(storage):
    with pytest.raises(StorageError):
        storage.resolve_signed("garbage")
    with pytest.raises(StorageError):
        storage.upload("images", "../escape.png", b"x")
    with pytest.raises(StorageError):
        storage.upload("secrets", "a.txt", b"x")
    with pytest.raises(StorageError):
        storage.upload("images", "empty.png", b"")


def test_expired_link(tmp_path):
    storage = ObjectStorage(str(tmp_path), "test-secret", ttl_seconds=-1)
    storage.upload("documents", "cert.pdf", b"%PDF")
    token = storage.signed_url("cert.pdf").rsplit("/", 1)[-1]
    with pytest.raises(StorageError, match="expired"):
        storage.resolve_signed(token)
