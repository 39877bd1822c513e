import unittest
from unittest.mock import MagicMock, patch

import requests
from flask import Request
from werkzeug.exceptions import ClientDisconnected

from peer_kv.membership import PeerAddress
from peer_kv.node import PeerNode


class TestPeerNodeApi(unittest.TestCase):
    """HTTP API tests through Flask's test client; no sockets are opened."""

    def setUp(self):
        self.node = PeerNode("s1", host="127.0.0.1", http_port=18080)
        self.client = self.node.app.test_client()

    def add_peers(self, *hosts):
        for host in hosts:
            self.node.registry.insert_if_absent(PeerAddress(host, 8080))

    def test_invalid_node_creation(self):
        with self.assertRaises(ValueError):
            PeerNode("")
        with self.assertRaises(ValueError):
            PeerNode("s1", host=123)
        with self.assertRaises(ValueError):
            PeerNode("s1", http_port="notaport")
        with self.assertRaises(ValueError):
            PeerNode("s1", discovery_port=70000)

    def test_identity_advertises_http_port(self):
        self.assertEqual(self.node.identity.http_port, 18080)
        self.assertEqual(self.node.identity.secret, "s1")

    def test_status_lists_peers(self):
        response = self.client.get('/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), [])

        self.add_peers("10.0.0.2", "10.0.0.3")
        response = self.client.get('/')
        self.assertEqual(response.get_json(), ["10.0.0.2:8080", "10.0.0.3:8080"])

    def test_health(self):
        self.add_peers("10.0.0.2")
        data = self.client.get('/health').get_json()
        self.assertEqual(data["status"], "healthy")
        self.assertEqual(data["node_id"], self.node.node_id)
        self.assertEqual(data["peer_count"], 1)

    def test_read_missing_key_returns_empty_body(self):
        response = self.client.get('/read/missing/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, b"")

    def test_read_your_own_write(self):
        response = self.client.post('/write/greeting/', data="hello")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data, b"")

        response = self.client.get('/read/greeting/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, b"hello")
        self.assertEqual(response.content_type, "application/octet-stream")

    def test_last_write_wins(self):
        self.client.post('/write/k/', data="one")
        self.client.post('/peer-write/k/', data="two")
        self.assertEqual(self.client.get('/read/k/').data, b"two")
        self.client.post('/write/k/', data="three")
        self.assertEqual(self.client.get('/read/k/').data, b"three")

    def test_method_mismatch_returns_405(self):
        cases = [
            ('post', '/'),
            ('post', '/read/k/'),
            ('put', '/read/k/'),
            ('get', '/write/k/'),
            ('delete', '/write/k/'),
            ('get', '/peer-write/k/'),
        ]
        for method, path in cases:
            with self.subTest(method=method, path=path):
                response = getattr(self.client, method)(path)
                self.assertEqual(response.status_code, 405)

    def test_binary_value_round_trips(self):
        blob = b"\xff\x00\x01\xfe"
        for path in ['/write/blob/', '/peer-write/blob/']:
            with self.subTest(path=path):
                response = self.client.post(path, data=blob)
                self.assertEqual(response.status_code, 201)
                self.assertEqual(self.client.get('/read/blob/').data, blob)
        self.assertEqual(self.node.store.get("blob"), blob)

    def test_unreadable_body_returns_400(self):
        for path in ['/write/k/', '/peer-write/k/']:
            with self.subTest(path=path):
                with patch.object(Request, 'get_data', side_effect=ClientDisconnected()):
                    response = self.client.post(path, data=b"partial")
                self.assertEqual(response.status_code, 400)
                self.assertIn("error", response.get_json())
        self.assertIsNone(self.node.store.get("k"))

    @patch('peer_kv.replication.requests.post')
    def test_write_replicates_to_every_peer(self, mock_post):
        mock_post.return_value = MagicMock(status_code=201)
        self.add_peers("10.0.0.2", "10.0.0.3")

        response = self.client.post('/write/greeting/', data="hello")

        self.assertEqual(response.status_code, 201)
        urls = sorted(call.args[0] for call in mock_post.call_args_list)
        self.assertEqual(urls, [
            "http://10.0.0.2:8080/peer-write/greeting/",
            "http://10.0.0.3:8080/peer-write/greeting/",
        ])

    @patch('peer_kv.replication.requests.post')
    def test_peer_write_does_not_replicate(self, mock_post):
        self.add_peers("10.0.0.2", "10.0.0.3")

        response = self.client.post('/peer-write/greeting/', data="hello")

        self.assertEqual(response.status_code, 201)
        mock_post.assert_not_called()
        self.assertEqual(self.node.store.get("greeting"), b"hello")

    @patch('peer_kv.replication.requests.post')
    def test_write_succeeds_when_replication_fails(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("unreachable")
        self.add_peers("10.0.0.2")

        response = self.client.post('/write/greeting/', data="hello")

        self.assertEqual(response.status_code, 201)
        mock_post.assert_called_once()
        self.assertEqual(self.client.get('/read/greeting/').data, b"hello")

    @patch('peer_kv.replication.requests.post')
    def test_handle_write_reports_replication_result(self, mock_post):
        mock_post.return_value = MagicMock(status_code=503)
        self.add_peers("10.0.0.2")
        result = self.node.handle_write("k", b"v")
        self.assertEqual(result.failed, ["10.0.0.2:8080"])
        self.assertEqual(self.node.store.get("k"), b"v")

    def test_metrics_endpoint(self):
        self.add_peers("10.0.0.2")
        self.client.post('/peer-write/k/', data="v")

        response = self.client.get('/metrics')

        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        self.assertIn('peer_kv_writes_total{kind="peer"} 1.0', body)
        self.assertIn("peer_kv_known_peers 1.0", body)

    def test_node_module_carries_no_test_helpers(self):
        import peer_kv.node
        self.assertFalse(hasattr(peer_kv.node, "find_free_port"))

    def test_in_flight_counter_returns_to_zero(self):
        self.client.get('/')
        self.client.post('/write/k/', data="v")
        self.client.post('/')
        self.assertEqual(self.node._inflight, 0)


if __name__ == '__main__':
    unittest.main()
