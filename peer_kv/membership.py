import threading
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class PeerAddress:
    """HTTP endpoint of a discovered peer"""
    host: str
    http_port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.http_port}"

    def url(self, path: str) -> str:
        """Build a URL on this peer, e.g. url('/peer-write/k/')"""
        return f"http://{self}{path}"


class MembershipRegistry:
    """
    Append-only, insertion-ordered set of known peers.
    
    The discovery listener inserts; HTTP handlers and the replication engine
    read snapshots. Both go through the same lock, so a snapshot always
    reflects the registry at a single point in time.
    """
    
    def __init__(self):
        self._peers: List[PeerAddress] = []
        self._seen = set()
        self._lock = threading.Lock()
    
    def insert_if_absent(self, peer: PeerAddress) -> bool:
        """Add a peer; returns True only if it was not already present"""
        key = str(peer)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            self._peers.append(peer)
            return True
    
    def snapshot(self) -> List[PeerAddress]:
        """Return a copy of the current peers in insertion order"""
        with self._lock:
            return list(self._peers)
    
    def __contains__(self, peer) -> bool:
        with self._lock:
            return str(peer) in self._seen
    
    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)
