import unittest

from dub.core.security import (
    DecryptionError,
    EncryptedSecret,
    EncryptionError,
    SecretStore,
)


def _flip_first_hex_digit(value):
    first = "1" if value[0] != "1" else "2"
    return first + value[1:]


class SecretStoreEncryptionTests(unittest.TestCase):
    def setUp(self):
        self.store = SecretStore()
        self.key = self.store.generate_key()

    def test_generate_key_is_256_bit_hex(self):
        self.assertEqual(len(self.key), 64)
        self.assertEqual(len(bytes.fromhex(self.key)), 32)
        self.assertNotEqual(self.key, self.store.generate_key())

    def test_decrypt_returns_original_plaintext(self):
        for text in ["gsk_" + "a" * 40, "", "unicode ✓ ключ", "x" * 5000]:
            secret = self.store.encrypt(text, self.key)
            self.assertEqual(self.store.decrypt(secret, self.key), text)

    def test_encrypt_uses_fresh_iv_each_call(self):
        first = self.store.encrypt("same text", self.key)
        second = self.store.encrypt("same text", self.key)
        self.assertEqual(len(bytes.fromhex(first.iv)), 16)
        self.assertEqual(len(bytes.fromhex(first.tag)), 16)
        self.assertNotEqual(first.iv, second.iv)
        self.assertNotEqual(first.ciphertext, second.ciphertext)

    def test_plaintext_not_visible_in_output(self):
        secret = self.store.encrypt("sk-supersecretvalue", self.key)
        self.assertNotIn("supersecret", str(secret.to_dict()))

    def test_tampered_ciphertext_fails(self):
        secret = self.store.encrypt("credential value", self.key)
        tampered = EncryptedSecret(_flip_first_hex_digit(secret.ciphertext), secret.iv, secret.tag)
        with self.assertRaises(DecryptionError):
            self.store.decrypt(tampered, self.key)

    def test_tampered_tag_fails(self):
        secret = self.store.encrypt("credential value", self.key)
        tampered = EncryptedSecret(secret.ciphertext, secret.iv, _flip_first_hex_digit(secret.tag))
        with self.assertRaises(DecryptionError):
            self.store.decrypt(tampered, self.key)

    def test_wrong_key_fails(self):
        secret = self.store.encrypt("credential value", self.key)
        with self.assertRaises(DecryptionError):
            self.store.decrypt(secret, self.store.generate_key())

    def test_malformed_input_fails_with_same_error(self):
        secret = self.store.encrypt("credential value", self.key)
        cases = [
            EncryptedSecret("zz-not-hex", secret.iv, secret.tag),
            EncryptedSecret(secret.ciphertext, "", secret.tag),
            EncryptedSecret(secret.ciphertext, secret.iv, secret.tag[:8]),
            {"encrypted": secret.ciphertext},
        ]
        messages = set()
        for case in cases:
            with self.assertRaises(DecryptionError) as ctx:
                self.store.decrypt(case, self.key)
            messages.add(str(ctx.exception))
            self.assertIsNone(ctx.exception.__cause__)
        self.assertEqual(messages, {"Decryption failed"})

    def test_decrypt_accepts_serialized_dict(self):
        secret = self.store.encrypt("stored", self.key)
        self.assertEqual(self.store.decrypt(secret.to_dict(), self.key), "stored")

    def test_encrypt_rejects_bad_key(self):
        with self.assertRaises(EncryptionError):
            self.store.encrypt("text", "abcd")
        with self.assertRaises(EncryptionError):
            self.store.encrypt(None, self.key)


class SecretStoreValidationTests(unittest.TestCase):
    def test_missing_key_is_invalid(self):
        self.assertEqual(
            SecretStore.validate_key_format("", "groq"),
            {"valid": False, "error": "API key is required"},
        )
        self.assertFalse(SecretStore.validate_key_format(None, "openai")["valid"])

    def test_provider_patterns(self):
        self.assertTrue(SecretStore.validate_key_format("gsk_" + "A1" * 16, "groq")["valid"])
        self.assertTrue(SecretStore.validate_key_format("sk-" + "b" * 32, "openai")["valid"])
        self.assertTrue(SecretStore.validate_key_format("sk-ant-" + "c-" * 16, "anthropic")["valid"])

        result = SecretStore.validate_key_format("gsk_short", "groq")
        self.assertEqual(result, {"valid": False, "error": "Invalid groq API key format"})
        self.assertFalse(SecretStore.validate_key_format("sk-" + "b" * 32 + "\n", "openai")["valid"])

    def test_unknown_provider_passes(self):
        self.assertEqual(SecretStore.validate_key_format("anything", "mistral"), {"valid": True})


class SecretStoreMaskingTests(unittest.TestCase):
    def test_masks_groq_key_keeping_prefix(self):
        self.assertEqual(SecretStore.mask_for_logging("gsk_abcdefgh12345678"), "gsk_abcdefgh****")

    def test_masks_openai_and_anthropic_keys(self):
        text = "openai=sk-abcdefgh99999999 anthropic=sk-ant-REDACTED"
        masked = SecretStore.mask_for_logging(text)
        self.assertEqual(masked, "openai=sk-abcdefgh**** anthropic=sk-ant-api03xyz****")

    def test_masks_hyphenated_key_bodies(self):
        anthropic = "sk-ant-api03-" + "AbCdEf123456" * 4
        self.assertTrue(SecretStore.validate_key_format(anthropic, "anthropic")["valid"])
        self.assertEqual(SecretStore.mask_for_logging(anthropic), "sk-ant-api03-Ab****")
        self.assertEqual(
            SecretStore.mask_for_logging("key=sk-proj-abcdefgh12345678"),
            "key=sk-proj-abc****",
        )

    def test_masks_key_after_underscore(self):
        self.assertEqual(
            SecretStore.mask_for_logging("TOKEN_sk-abcdefgh12345678"),
            "TOKEN_sk-abcdefgh****",
        )

    def test_masking_is_idempotent(self):
        masked = SecretStore.mask_for_logging("sk-ant-api03-" + "Z9" * 20)
        self.assertEqual(SecretStore.mask_for_logging(masked), masked)

    def test_leaves_other_text_and_types_alone(self):
        self.assertEqual(SecretStore.mask_for_logging("task-abcdefghijk"), "task-abcdefghijk")
        self.assertEqual(SecretStore.mask_for_logging(42), 42)
        self.assertIsNone(SecretStore.mask_for_logging(None))

    def test_sanitize_input(self):
        self.assertEqual(SecretStore.sanitize_input("  <b>gsk_key</b> "), "bgsk_key/b")
        self.assertEqual(SecretStore.sanitize_input(7), 7)


if __name__ == "__main__":
    unittest.main()
