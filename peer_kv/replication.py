#!/usr/bin/env python3
"""
Best-effort write replication.

A locally originated write is pushed to every known peer's
``/peer-write/<key>/`` endpoint. Every peer gets its own worker, so a write waits
roughly one timeout however large the membership is. Failures are logged
and never retried.
"""

import time
import concurrent.futures
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from urllib.parse import quote

import requests

from .membership import PeerAddress
from .metrics import NodeMetrics
from .logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class ReplicationResult:
    key: str
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class ReplicationEngine:
    """Fans writes out to peers over HTTP."""
    
    def __init__(self, timeout: float = 2.0, metrics: Optional[NodeMetrics] = None):
        if timeout is None or timeout <= 0:
            raise ValueError("Replication timeout must be a positive number of seconds")
        self.timeout = timeout
        self.metrics = metrics
    
    def peer_write_url(self, peer: PeerAddress, key: str) -> str:
        return peer.url(f"/peer-write/{quote(key, safe='')}/")
    
    def send_to_peer(self, peer: PeerAddress, key: str, value: bytes) -> bool:
        """Push one value to one peer. Returns True on a 2xx response."""
        url = self.peer_write_url(peer, key)
        logger.info(f"Posting '{key}' to '{url}'")
        try:
            response = requests.post(
                url,
                data=value,
                headers={'Content-Type': 'application/octet-stream'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Replication of '{key}' to {peer} failed: {e}")
            return False
        
        if not 200 <= response.status_code < 300:
            logger.warning(f"Replication of '{key}' to {peer} failed: status {response.status_code}")
            return False
        return True
    
    def replicate(self, key: str, value: bytes, peers: Sequence[PeerAddress]) -> ReplicationResult:
        """
        Send the write to every peer concurrently and wait for all calls.
        
        Args:
            key: Key that was written locally
            value: Value that was written locally
            peers: Membership snapshot to replicate to
        
        Returns:
            ReplicationResult listing the peers that accepted or failed the write
        """
        result = ReplicationResult(key=key)
        if not peers:
            return result
        
        started = time.time()
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(peers)) as executor:
            futures = {executor.submit(self.send_to_peer, peer, key, value): peer for peer in peers}
            for future in concurrent.futures.as_completed(futures):
                peer = futures[future]
                try:
                    ok = future.result()
                except Exception as e:
                    logger.error(f"Unexpected replication error for {peer}: {e}")
                    ok = False
                if ok:
                    result.succeeded.append(str(peer))
                else:
                    result.failed.append(str(peer))
                if self.metrics:
                    self.metrics.replication_requests.labels(status="success" if ok else "failure").inc()
        
        if self.metrics:
            self.metrics.replication_duration.observe(time.time() - started)

        logger.info(
            f"Replicated '{key}' to {len(result.succeeded)}/{len(peers)} peers"
            + (f", failed: {result.failed}" if result.failed else "")
        )
        return result
