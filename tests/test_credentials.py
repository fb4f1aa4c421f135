"""Unit tests for CredentialStore"""

import pytest

from mangrat.auth.credentials import CredentialStore, hash_password, verify_password
from mangrat.core.exceptions import AuthError, ConflictError, NotFoundError, ValidationError
from mangrat.stores.memory_store import InMemoryRepository


@pytest.fixture
def store():
    return CredentialStore(InMemoryRepository(), bcrypt_rounds=4)


class TestPasswordHashing:
    def test_hash_is_salted_and_not_plaintext(self):
        first = hash_password("secret", rounds=4)
        second = hash_password("secret", rounds=4)
        assert first != "secret"
        assert first != second
        assert verify_password("secret", first)
        assert verify_password("secret", second)

    def test_wrong_password_does_not_verify(self):
        assert not verify_password("nope", hash_password("secret", rounds=4))

    def test_garbage_hash_does_not_verify(self):
        assert not verify_password("secret", "not-a-bcrypt-hash")


class TestRegister:
    def test_register_returns_id_and_stores_hash(self, store):
        identity_id = store.register("Ana", "ana@x.com", "secret")

        identity = store.get(identity_id)
        assert identity.name == "Ana"
        assert identity.email == "ana@x.com"
        assert identity.plan == "basic"
        assert identity.password_hash != "secret"
        assert verify_password("secret", identity.password_hash)

    @pytest.mark.parametrize(
        "name,email,password",
        [
            ("", "ana@x.com", "secret"),
            ("   ", "ana@x.com", "secret"),
            ("Ana", "", "secret"),
            ("Ana", "ana@x.com", ""),
        ],
    )
    def test_empty_fields_rejected(self, store, name, email, password):
        with pytest.raises(ValidationError):
            store.register(name, email, password)

    def test_malformed_email_rejected(self, store):
        with pytest.raises(ValidationError):
            store.register("Ana", "not-an-email", "secret")

    def test_duplicate_email_conflicts_case_insensitively(self, store):
        store.register("Ana", "ana@x.com", "secret")
        with pytest.raises(ConflictError):
            store.register("Ana Again", "ANA@x.com", "other")

    def test_email_is_stored_lowercased(self, store):
        identity_id = store.register("Bo", "Bo@X.com", "secret")
        assert store.get(identity_id).email == "bo@x.com"

    def test_password_over_72_bytes_rejected(self, store):
        with pytest.raises(ValidationError):
            store.register("Ana", "ana@x.com", "p" * 73)
        assert store.repository.get_identity_by_email("ana@x.com") is None

    def test_password_of_72_multibyte_bytes_accepted(self, store):
        password = "\u00e9" * 36
        identity_id = store.register("Ana", "ana@x.com", password)
        assert store.verify("ana@x.com", password).id == identity_id


class TestVerify:
    def test_correct_credentials(self, store):
        identity_id = store.register("Ana", "ana@x.com", "secret")
        identity = store.verify("ana@x.com", "secret")
        assert identity.id == identity_id

    def test_email_lookup_ignores_case(self, store):
        store.register("Ana", "ana@x.com", "secret")
        assert store.verify("Ana@X.com", "secret").email == "ana@x.com"

    def test_wrong_password(self, store):
        store.register("Ana", "ana@x.com", "secret")
        with pytest.raises(AuthError):
            store.verify("ana@x.com", "wrong")

    def test_unknown_email(self, store):
        with pytest.raises(AuthError):
            store.verify("nobody@x.com", "secret")

    @pytest.mark.parametrize("email", ["Ana <ana@x.com>", "jose\u0301@x.com", " ANA@X.COM "])
    def test_login_with_the_registration_string(self, store, email):
        identity_id = store.register("Ana", email, "secret")
        assert store.verify(email, "secret").id == identity_id

    def test_malformed_email_is_an_auth_failure(self, store):
        store.register("Ana", "ana@x.com", "secret")
        with pytest.raises(AuthError):
            store.verify("not-an-email", "secret")

    def test_long_password_sharing_a_72_byte_prefix_does_not_verify(self, store):
        password = "p" * 72
        store.register("Ana", "ana@x.com", password)
        with pytest.raises(AuthError):
            store.verify("ana@x.com", password + "extra")

    def test_missing_fields(self, store):
        with pytest.raises(ValidationError):
            store.verify("", "secret")


class TestUpgrade:
    def test_upgrade_is_idempotent(self, store):
        identity_id = store.register("Ana", "ana@x.com", "secret")
        assert store.upgrade(identity_id) == "premium"
        assert store.upgrade(identity_id) == "premium"
        assert store.get(identity_id).plan == "premium"

    def test_upgrade_unknown_identity(self, store):
        with pytest.raises(NotFoundError):
            store.upgrade(999)
