"""
Peer Key-Value Cluster Package
"""

from .heartbeat import NodeIdentity, Heartbeat, HeartbeatDecodeError
from .membership import PeerAddress, MembershipRegistry
from .kvstore import KVStore
from .discovery import DiscoveryListener, DiscoveryBroadcaster, DiscoverySetupError
from .replication import ReplicationEngine, ReplicationResult
from .metrics import NodeMetrics
from .node import PeerNode

__all__ = [
    'NodeIdentity',
    'Heartbeat',
    'HeartbeatDecodeError',
    'PeerAddress',
    'MembershipRegistry',
    'KVStore',
    'DiscoveryListener',
    'DiscoveryBroadcaster',
    'DiscoverySetupError',
    'ReplicationEngine',
    'ReplicationResult',
    'NodeMetrics',
    'PeerNode'
]

__version__ = '1.0.0'
