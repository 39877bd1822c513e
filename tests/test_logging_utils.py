import unittest

from peer_kv.logging_utils import log_node_startup, mask_secret


class TestSecretMasking(unittest.TestCase):
    def test_empty_secret(self):
        self.assertEqual(mask_secret(""), "<empty>")
        self.assertEqual(mask_secret(None), "<empty>")

    def test_no_characters_of_the_secret_are_shown(self):
        for secret in ["s", "s1", "abc", "hunter2-cluster"]:
            with self.subTest(secret=secret):
                masked = mask_secret(secret)
                self.assertNotIn(secret, masked)
                self.assertFalse(masked.startswith(secret[0]))
                self.assertIn(f"{len(secret)} chars", masked)

    def test_startup_log_masks_short_secret(self):
        with self.assertLogs("peer_kv.logging_utils", level="INFO") as logs:
            log_node_startup("node-1", "127.0.0.1", 8080, 8888, "s1")
        output = "\n".join(logs.output)
        self.assertIn("udp/8888", output)
        self.assertNotIn("s1", output)


if __name__ == '__main__':
    unittest.main()
