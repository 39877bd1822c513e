#!/usr/bin/env python3
"""
Peer node: UDP broadcast discovery plus a replicated in-memory key-value
store served over HTTP.

    GET  /                   known peers as a JSON list
    GET  /health             liveness
    GET  /metrics            Prometheus metrics
    GET  /read/<key>/        stored value (empty body when absent)
    POST /write/<key>/       store body, replicate to all known peers
    POST /peer-write/<key>/  store body, no further replication
"""

import threading
from typing import List, Optional

from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import ClientDisconnected
from werkzeug.serving import make_server

from .discovery import DiscoveryBroadcaster, DiscoveryListener
from .heartbeat import NodeIdentity
from .kvstore import KVStore
from .membership import MembershipRegistry
from .metrics import NodeMetrics
from .replication import ReplicationEngine
from .yaml_config import YamlConfig
from .logging_utils import get_logger, log_node_startup, log_node_shutdown, log_error

logger = get_logger(__name__)


class UnreadableBodyError(ValueError):
    """Request body could not be read from the client"""


class PeerNode:
    """
    Service context for one cluster member.
    
    Owns the membership registry, the key-value store and the replication
    engine, and hands them to the discovery threads and HTTP handlers.
    """
    
    def __init__(self, secret: str, host: str = "0.0.0.0", http_port: int = 8080,
                 discovery_port: int = 8888, broadcast_address: str = "255.255.255.255",
                 broadcast_port: Optional[int] = None, discovery_interval: float = 2.0,
                 buffer_size: int = 256, replication_timeout: float = 2.0,
                 identity: Optional[NodeIdentity] = None):
        """Initialize a new peer node.
        
        Args:
            secret (str): Shared cluster secret
            host (str): HTTP bind address
            http_port (int): HTTP port, also advertised in heartbeats
            discovery_port (int): UDP port heartbeats are received on
            broadcast_address (str): Destination address for heartbeats
            broadcast_port (int): Destination port for heartbeats, defaults to discovery_port
            discovery_interval (float): Seconds between heartbeats
            buffer_size (int): Maximum heartbeat datagram size
            replication_timeout (float): Per-peer timeout for replicated writes
            identity (NodeIdentity): Optional fixed identity, generated when omitted
        """
        if not isinstance(secret, str) or not secret:
            raise ValueError("Secret must be a non-empty string")
        if not isinstance(host, str):
            raise ValueError("Host must be a string")
        if not isinstance(http_port, int) or not 0 < http_port < 65536:
            raise ValueError("HTTP port must be an integer between 1 and 65535")
        if not isinstance(discovery_port, int) or not 0 <= discovery_port < 65536:
            raise ValueError("Discovery port must be an integer between 0 and 65535")
        
        self.host = host
        self.http_port = http_port
        self.discovery_port = discovery_port
        self.broadcast_address = broadcast_address
        self.broadcast_port = broadcast_port
        self.discovery_interval = discovery_interval
        self.buffer_size = buffer_size
        
        self.identity = identity or NodeIdentity.generate(secret, http_port=http_port)
        self.node_id = self.identity.id
        
        self.registry = MembershipRegistry()
        self.store = KVStore()
        self.metrics = NodeMetrics()
        self.metrics.known_peers.set_function(lambda: len(self.registry))
        self.replicator = ReplicationEngine(timeout=replication_timeout, metrics=self.metrics)
        
        self.app = Flask(f"peer-kv-{self.node_id}")
        self._inflight = 0
        self._inflight_cond = threading.Condition()
        self._setup_request_tracking()
        self._setup_routes()

        self.stop_event = threading.Event()
        self.fatal_error: Optional[BaseException] = None
        self.listener: Optional[DiscoveryListener] = None
        self.broadcaster: Optional[DiscoveryBroadcaster] = None
        self.server = None
        self.server_thread = None
        self.is_running = False
    
    @classmethod
    def from_config(cls, secret: str, config: YamlConfig, **overrides) -> "PeerNode":
        """Build a node from a YamlConfig; keyword overrides win over the file"""
        node_config = config.get_node_config()
        discovery = config.get_discovery_config()
        replication = config.get_replication_config()
        
        settings = {
            'host': node_config.get('host', '0.0.0.0'),
            'http_port': int(node_config.get('http_port', 8080)),
            'discovery_port': int(discovery.get('port', 8888)),
            'broadcast_address': discovery.get('broadcast_address', '255.255.255.255'),
            'broadcast_port': discovery.get('broadcast_port'),
            'discovery_interval': float(discovery.get('interval', 2.0)),
            'buffer_size': int(discovery.get('buffer_size', 256)),
            'replication_timeout': float(replication.get('timeout', 2.0)),
        }
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls(secret, **settings)
    
    def _read_value(self) -> bytes:
        try:
            return request.get_data(cache=False)
        except (ClientDisconnected, OSError) as e:
            raise UnreadableBodyError(str(e)) from e
    
    def _setup_request_tracking(self):
        """Count in-flight requests so stop() can let them drain."""
        @self.app.before_request
        def track_request_start():
            with self._inflight_cond:
                self._inflight += 1
            g.inflight_counted = True

        @self.app.teardown_request
        def track_request_end(exc):
            if g.pop('inflight_counted', False):
                with self._inflight_cond:
                    self._inflight -= 1
                    self._inflight_cond.notify_all()

    def _drain_requests(self, timeout: float) -> bool:
        with self._inflight_cond:
            return self._inflight_cond.wait_for(lambda: self._inflight == 0, timeout=timeout)

    def _setup_routes(self):
        """Set up routes for the Flask app."""
        @self.app.route('/', methods=['GET'])
        def status():
            """Return known peers as a JSON list"""
            return jsonify([str(peer) for peer in self.registry.snapshot()])
        
        @self.app.route('/health', methods=['GET'])
        def health_check():
            return jsonify({
                "status": "healthy",
                "node_id": self.node_id,
                "peer_count": len(self.registry),
            })
        
        @self.app.route('/metrics', methods=['GET'])
        def metrics():
            body, content_type = self.metrics.render()
            return Response(body, mimetype=content_type)
        
        @self.app.route('/read/<key>/', methods=['GET'])
        def read(key):
            value = self.store.get(key)
            return Response(value or b'', status=200, mimetype='application/octet-stream')
        
        @self.app.route('/write/<key>/', methods=['POST'])
        def write(key):
            """Store locally, then replicate to every known peer (best-effort)"""
            try:
                value = self._read_value()
            except UnreadableBodyError as e:
                logger.warning(f"Unreadable body for write of '{key}': {e}")
                return jsonify({"error": "Unreadable request body"}), 400
            
            self.handle_write(key, value)
            return '', 201
        
        @self.app.route('/peer-write/<key>/', methods=['POST'])
        def peer_write(key):
            """Accept a replicated value; never replicated further"""
            try:
                value = self._read_value()
            except UnreadableBodyError as e:
                logger.warning(f"Unreadable body for peer-write of '{key}': {e}")
                return jsonify({"error": "Unreadable request body"}), 400
            
            self.handle_peer_write(key, value)
            return '', 201
    
    def handle_write(self, key: str, value: bytes):
        """Local write: commit first, then fan out to the current membership snapshot"""
        self.store.put(key, value)
        self.metrics.writes_total.labels(kind="local").inc()
        logger.info(f"Wrote value for key '{key}' ({len(value)} bytes)")
        return self.replicator.replicate(key, value, self.registry.snapshot())
    
    def handle_peer_write(self, key: str, value: bytes):
        self.store.put(key, value)
        self.metrics.writes_total.labels(kind="peer").inc()
        logger.info(f"Accepted replicated value for key '{key}'")
    
    def _on_fatal(self, error: BaseException):
        """A discovery loop died; request a full shutdown"""
        if self.fatal_error is None:
            self.fatal_error = error
        self.stop_event.set()
    
    def start(self):
        """Start discovery and the HTTP server.
        
        Raises DiscoverySetupError or OSError when a socket cannot be bound;
        nothing is left running in that case.
        """
        if self.is_running:
            return
        
        self.stop_event = threading.Event()
        self.fatal_error = None
        
        self.listener = DiscoveryListener(
            identity=self.identity,
            registry=self.registry,
            port=self.discovery_port,
            default_http_port=self.http_port,
            buffer_size=self.buffer_size,
            stop_event=self.stop_event,
            on_fatal=self._on_fatal,
            metrics=self.metrics,
        )
        self.listener.start()
        self.discovery_port = self.listener.port
        
        try:
            self.broadcaster = DiscoveryBroadcaster(
                identity=self.identity,
                port=self.broadcast_target_port,
                broadcast_address=self.broadcast_address,
                interval=self.discovery_interval,
                stop_event=self.stop_event,
                on_fatal=self._on_fatal,
                metrics=self.metrics,
            )
            self.broadcaster.start()
            self.server = self._make_server()
        except Exception:
            self.stop_event.set()
            self.listener.stop()
            if self.broadcaster:
                self.broadcaster.stop()
            raise
        
        self.is_running = True
        self.server_thread = threading.Thread(target=self._run_server, name="http-server", daemon=True)
        self.server_thread.start()
        log_node_startup(self.node_id, self.host, self.http_port, self.discovery_port, self.identity.secret)
    
    def _make_server(self):
        try:
            return make_server(self.host, self.http_port, self.app, threaded=True)
        except SystemExit as e:
            # werkzeug reports bind failures on stderr and exits
            raise OSError(f"Cannot bind HTTP server on {self.address}") from e

    def _run_server(self):
        """Run the WSGI server in a background thread."""
        try:
            logger.info(f"HTTP server started for {self.node_id} on {self.address}")
            self.server.serve_forever()
        except Exception as e:
            log_error("http", f"Server error: {e}", self.node_id, e)
            self._on_fatal(e)
    
    def wait(self):
        """Block until stop is requested or a discovery loop fails"""
        while not self.stop_event.is_set():
            self.stop_event.wait(1.0)
    
    def stop(self, drain_timeout: float = 5.0):
        """Stop discovery and the HTTP server, letting in-flight requests drain."""
        if not self.is_running:
            return
        log_node_shutdown(self.node_id)
        self.is_running = False
        self.stop_event.set()

        if self.server:
            self.server.shutdown()
            if self.server_thread:
                self.server_thread.join(timeout=3.0)
            if not self._drain_requests(drain_timeout):
                logger.warning(f"{self._inflight} requests still running after {drain_timeout}s")
            self.server.server_close()
            self.server = None
        
        if self.listener:
            self.listener.stop()
        if self.broadcaster:
            self.broadcaster.stop()
        logger.info(f"Node {self.node_id} stopped")
    
    @property
    def broadcast_target_port(self) -> int:
        """UDP port heartbeats are sent to"""
        return self.broadcast_port or self.discovery_port
    
    @property
    def address(self) -> str:
        return f"{self.host}:{self.http_port}"
    
    def get_peers(self) -> List[str]:
        return [str(peer) for peer in self.registry.snapshot()]
    
    def get_peer_count(self) -> int:
        return len(self.registry)

