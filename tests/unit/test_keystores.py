"""Tests for apksign.keystore: the PKCS #12 and PEMKS keystores."""
from __future__ import annotations

import json

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from apksign.errors import KeyStoreError, KeyStoreIntegrityError, UnrecoverableKeyError
from apksign.keystore import PemKeyStore, PKCS12KeyStore


def _p12(credentials, password: bytes, name: bytes | None = b"release") -> bytes:
    return pkcs12.serialize_key_and_certificates(
        name=name,
        key=credentials.key,
        cert=credentials.cert,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(password),
    )


# ---------------------------------------------------------------------------
# PKCS12KeyStore
# ---------------------------------------------------------------------------


class TestPKCS12KeyStore:
    def test_load_and_read_key_entry(self, ec_credentials) -> None:
        store = PKCS12KeyStore()
        store.load(_p12(ec_credentials, b"storepw"), b"storepw")
        assert store.aliases() == ["release"]
        assert store.is_key_entry("release")
        assert "release" in store
        key = store.get_key("release", b"storepw")
        assert key.private_numbers() == ec_credentials.key.private_numbers()
        assert store.get_certificate_chain("release") == [ec_credentials.cert]

    def test_unnamed_entry_gets_default_alias(self, ec_credentials) -> None:
        store = PKCS12KeyStore()
        store.load(_p12(ec_credentials, b"pw", name=None), b"pw")
        assert store.aliases() == ["1"]

    def test_wrong_store_password_fails_integrity(self, ec_credentials) -> None:
        store = PKCS12KeyStore()
        with pytest.raises(KeyStoreIntegrityError):
            store.load(_p12(ec_credentials, b"storepw"), b"nope")

    def test_wrong_key_password_is_unrecoverable(self, ec_credentials) -> None:
        store = PKCS12KeyStore()
        store.load(_p12(ec_credentials, b"storepw"), b"storepw")
        with pytest.raises(UnrecoverableKeyError):
            store.get_key("release", b"nope")

    def test_unknown_alias_returns_none(self, ec_credentials) -> None:
        store = PKCS12KeyStore()
        store.load(_p12(ec_credentials, b"pw"), b"pw")
        assert store.get_key("other", b"pw") is None
        assert not store.is_key_entry("other")

    def test_load_none_gives_empty_store(self) -> None:
        store = PKCS12KeyStore()
        store.load(None, None)
        assert store.aliases() == []


# ---------------------------------------------------------------------------
# PemKeyStore
# ---------------------------------------------------------------------------


@pytest.fixture()
def pem_store(ec_credentials, ec_credentials_2) -> PemKeyStore:
    store = PemKeyStore(mac_iterations=1000)
    store.set_key_entry("first", ec_credentials.key, [ec_credentials.cert], b"firstpw")
    store.set_key_entry("second", ec_credentials_2.key, [ec_credentials_2.cert], b"secondpw")
    store.set_certificate_entry("trusted", ec_credentials.cert)
    return store


class TestPemKeyStore:
    def test_dump_and_load(self, pem_store: PemKeyStore, ec_credentials_2) -> None:
        data = pem_store.dump(b"storepw")
        loaded = PemKeyStore()
        loaded.load(data, b"storepw")
        assert loaded.aliases() == ["first", "second", "trusted"]
        assert loaded.is_key_entry("second")
        assert not loaded.is_key_entry("trusted")
        key = loaded.get_key("second", b"secondpw")
        assert key.private_numbers() == ec_credentials_2.key.private_numbers()
        assert loaded.get_certificate_chain("second") == [ec_credentials_2.cert]

    def test_each_key_has_its_own_password(self, pem_store: PemKeyStore) -> None:
        with pytest.raises(UnrecoverableKeyError):
            pem_store.get_key("first", b"secondpw")

    def test_wrong_store_password(self, pem_store: PemKeyStore) -> None:
        data = pem_store.dump(b"storepw")
        with pytest.raises(KeyStoreIntegrityError):
            PemKeyStore().load(data, b"wrong")

    def test_tampered_entries_fail_integrity(self, pem_store: PemKeyStore) -> None:
        document = json.loads(pem_store.dump(b"storepw"))
        del document["entries"]["trusted"]
        with pytest.raises(KeyStoreIntegrityError):
            PemKeyStore().load(json.dumps(document).encode(), b"storepw")

    def test_no_password_skips_integrity_check(self, pem_store: PemKeyStore) -> None:
        loaded = PemKeyStore()
        loaded.load(pem_store.dump(b"storepw"), None)
        assert len(loaded.aliases()) == 3

    def test_not_a_keystore(self) -> None:
        with pytest.raises(KeyStoreError, match="Not a PEMKS keystore"):
            PemKeyStore().load(b"\x30\x82 binary", b"pw")

    @pytest.mark.parametrize(
        "mac",
        [
            {},
            {"salt": "zz", "iterations": 1000, "value": "00"},
            {"salt": "00", "iterations": "many", "value": "00"},
            {"salt": "00", "iterations": 0, "value": "00"},
            "not-a-mapping",
        ],
    )
    def test_malformed_mac(self, mac) -> None:
        document = {"format": "apksign-pemks", "version": 1, "entries": {}, "mac": mac}
        with pytest.raises(KeyStoreError, match="Not a PEMKS keystore") as excinfo:
            PemKeyStore().load(json.dumps(document).encode(), b"x")
        assert not isinstance(excinfo.value, KeyStoreIntegrityError)

    def test_certificate_entry_has_no_chain(self, pem_store: PemKeyStore) -> None:
        assert pem_store.get_certificate_chain("trusted") is None
        assert pem_store.get_key("trusted", None) is None

    def test_delete_entry(self, pem_store: PemKeyStore) -> None:
        pem_store.delete_entry("trusted")
        assert "trusted" not in pem_store
        with pytest.raises(KeyError):
            pem_store.delete_entry("trusted")

    def test_unencrypted_entry_ignores_password(self, ec_credentials) -> None:
        store = PemKeyStore()
        store.set_key_entry("plain", ec_credentials.key, [ec_credentials.cert], None)
        assert store.get_key("plain", b"anything") is not None
