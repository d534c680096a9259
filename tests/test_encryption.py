"""Tests for API key encryption at rest."""

from __future__ import annotations

import base64
import hashlib
import unittest

from tubedesk.encryption import ApiKeyCipher, build_api_key_cipher, derive_key


class DeriveKeyTests(unittest.TestCase):
    def test_hex_secret_is_decoded(self) -> None:
        secret = "ab" * 32
        self.assertEqual(derive_key(secret), bytes.fromhex(secret))

    def test_base64_secret_is_decoded(self) -> None:
        raw = bytes(range(32))
        secret = base64.b64encode(raw).decode("ascii")
        self.assertEqual(len(secret), 44)
        self.assertEqual(derive_key(secret), raw)

    def test_other_secrets_are_hashed(self) -> None:
        self.assertEqual(derive_key("passphrase"), hashlib.sha256(b"passphrase").digest())


class ApiKeyCipherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cipher = ApiKeyCipher("a long passphrase used only by these tests")

    def test_values_decrypt_to_the_original(self) -> None:
        encrypted, iv = self.cipher.encrypt("AIzaSyExample")
        self.assertEqual(len(iv), 32)
        self.assertEqual(self.cipher.decrypt(encrypted, iv), "AIzaSyExample")

    def test_each_value_gets_a_fresh_iv(self) -> None:
        first = self.cipher.encrypt("AIzaSyExample")
        second = self.cipher.encrypt("AIzaSyExample")
        self.assertNotEqual(first[1], second[1])
        self.assertNotEqual(first[0], second[0])

    def test_malformed_input_is_rejected(self) -> None:
        encrypted, iv = self.cipher.encrypt("AIzaSyExample")
        with self.assertRaises(ValueError):
            self.cipher.decrypt("not-hex", iv)
        with self.assertRaises(ValueError):
            self.cipher.decrypt(encrypted, iv[:-2])
        with self.assertRaises(ValueError):
            self.cipher.decrypt("", iv)

    def test_missing_secret_disables_encryption(self) -> None:
        with self.assertLogs("tubedesk.encryption", level="WARNING"):
            self.assertIsNone(build_api_key_cipher(None))
        with self.assertRaises(ValueError):
            ApiKeyCipher("")


if __name__ == "__main__":
    unittest.main()
