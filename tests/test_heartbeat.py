import json
import unittest

from peer_kv.heartbeat import (
    NodeIdentity, Heartbeat, HeartbeatDecodeError, MAX_HEARTBEAT_SIZE, encode, decode
)


class TestHeartbeatCodec(unittest.TestCase):
    def test_generate_creates_unique_tokens(self):
        a = NodeIdentity.generate("s1")
        b = NodeIdentity.generate("s1")
        self.assertNotEqual(a.id, b.id)
        self.assertEqual(a.secret, "s1")

    def test_encode_is_a_json_object(self):
        identity = NodeIdentity(id="node-a", secret="s1", http_port=8080)
        message = json.loads(encode(identity).decode("utf-8"))
        self.assertEqual(message, {"id": "node-a", "secret": "s1", "http_port": 8080})

    def test_decode_encoded_identity(self):
        identity = NodeIdentity(id="node-a", secret="s1", http_port=9001)
        self.assertEqual(decode(encode(identity)), Heartbeat(id="node-a", secret="s1", http_port=9001))

    def test_decode_without_http_port(self):
        heartbeat = decode(b'{"id": "node-b", "secret": "s1"}')
        self.assertEqual(heartbeat.id, "node-b")
        self.assertIsNone(heartbeat.http_port)

    def test_encode_rejects_oversized_payload(self):
        identity = NodeIdentity(id="node-a", secret="x" * MAX_HEARTBEAT_SIZE)
        with self.assertRaises(ValueError):
            encode(identity)

    def test_decode_rejects_malformed_payloads(self):
        bad_payloads = [
            b"",
            b"not json",
            b"\xff\xfe\x00",
            b"[1, 2, 3]",
            b'"just a string"',
            b'{"secret": "s1"}',
            b'{"id": "", "secret": "s1"}',
            b'{"id": "node-a"}',
            b'{"id": 42, "secret": "s1"}',
            b'{"id": "node-a", "secret": "s1", "http_port": "80"}',
            b'{"id": "node-a", "secret": "s1", "http_port": 0}',
            b'{"id": "node-a", "secret": "s1", "http_port": true}',
            b"{" + b" " * MAX_HEARTBEAT_SIZE + b"}",
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(HeartbeatDecodeError):
                    decode(payload)

    def test_decode_error_is_a_value_error(self):
        self.assertTrue(issubclass(HeartbeatDecodeError, ValueError))


if __name__ == '__main__':
    unittest.main()
