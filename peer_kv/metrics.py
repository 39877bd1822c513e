from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
import logging

logger = logging.getLogger(__name__)


class NodeMetrics:
    """Prometheus metrics for one peer node.
    
    Each node owns its registry so several nodes can share a process.
    """
    
    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()
        
        # result: admitted, duplicate, self, bad_secret, malformed
        self.heartbeats_received = Counter(
            'peer_kv_heartbeats_received_total',
            'Heartbeat datagrams received by the discovery listener',
            ['result'],
            registry=self.registry
        )
        
        self.heartbeats_sent = Counter(
            'peer_kv_heartbeats_sent_total',
            'Heartbeat datagrams sent by the discovery broadcaster',
            ['status'],
            registry=self.registry
        )
        
        self.known_peers = Gauge(
            'peer_kv_known_peers',
            'Number of peers in the membership registry',
            registry=self.registry
        )
        
        # kind: local, peer
        self.writes_total = Counter(
            'peer_kv_writes_total',
            'Writes applied to the local store',
            ['kind'],
            registry=self.registry
        )
        
        self.replication_requests = Counter(
            'peer_kv_replication_requests_total',
            'Per-peer replication calls',
            ['status'],
            registry=self.registry
        )
        
        self.replication_duration = Histogram(
            'peer_kv_replication_duration_seconds',
            'Time spent replicating one write to all peers',
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
            registry=self.registry
        )
    
    def render(self):
        """Return (body, content type) for a /metrics response"""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
