"""Tests for session id hashing."""
import pytest

from safeharbor.shared.utils import pii


@pytest.fixture(autouse=True)
def reset_salt():
    pii._salt = None
    yield
    pii.configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


class TestConfigurePiiSalt:
    """Tests for salt configuration."""

    def test_short_salt_rejected(self):
        with pytest.raises(ValueError):
            pii.configure_pii_salt("too_short")

        assert pii.is_pii_salt_configured() is False

    def test_empty_salt_rejected(self):
        with pytest.raises(ValueError):
            pii.configure_pii_salt("")


class TestHashPii:
    """Tests for salted hashing."""

    def test_unconfigured_salt_raises(self):
        with pytest.raises(RuntimeError):
            pii.hash_pii("session-1")

    def test_hash_is_stable_and_hides_input(self):
        pii.configure_pii_salt("a" * 32)

        first = pii.hash_pii("session-1")

        assert first == pii.hash_pii("session-1")
        assert len(first) == 64
        assert "session-1" not in first

    def test_salt_changes_hash(self):
        pii.configure_pii_salt("a" * 32)
        with_a = pii.hash_pii("session-1")
        pii.configure_pii_salt("b" * 32)

        assert pii.hash_pii("session-1") != with_a

    def test_text_fingerprint_ignores_salt(self):
        assert pii.hash_text_for_audit("hello") == pii.hash_text_for_audit("hello")
        assert pii.hash_text_for_audit("hello") != pii.hash_text_for_audit("hello!")
