#!/usr/bin/env python3
"""
UDP broadcast discovery.

Every node runs two background threads on the discovery port:

- DiscoveryBroadcaster: sends this node's heartbeat to the broadcast address
  every ``interval`` seconds.
- DiscoveryListener: receives heartbeats and admits the sender into the
  membership registry when the secret matches, the identity token is not our
  own, and the address is not already known.

Peers are never removed.
"""

import socket
import threading
from typing import Callable, Optional, Tuple

from .heartbeat import NodeIdentity, HeartbeatDecodeError, encode, decode
from .membership import MembershipRegistry, PeerAddress
from .metrics import NodeMetrics
from .logging_utils import get_logger, log_cluster_event, log_error, mask_secret

logger = get_logger(__name__)

FatalCallback = Callable[[BaseException], None]


class DiscoverySetupError(OSError):
    """Raised when a discovery socket cannot be created or bound"""


def open_listen_socket(port: int, host: str = "0.0.0.0") -> socket.socket:
    """Create the UDP socket heartbeats are received on."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    except OSError as e:
        raise DiscoverySetupError(f"cannot create discovery socket: {e}") from e
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except OSError:
                # Not supported on every platform; plain SO_REUSEADDR is enough there.
                logger.debug("SO_REUSEPORT unavailable on discovery socket")
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise DiscoverySetupError(f"cannot bind discovery socket {host}:{port}: {e}") from e
    return sock


def open_broadcast_socket() -> socket.socket:
    """Create the UDP socket heartbeats are sent from."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    except OSError as e:
        raise DiscoverySetupError(f"cannot create broadcast socket: {e}") from e
    return sock


class DiscoveryListener:
    """Receives heartbeats and admits new peers into the registry."""
    
    def __init__(self, identity: NodeIdentity, registry: MembershipRegistry, port: int,
                 default_http_port: int, host: str = "0.0.0.0", buffer_size: int = 256,
                 stop_event: Optional[threading.Event] = None,
                 on_fatal: Optional[FatalCallback] = None, poll_interval: float = 0.5,
                 metrics: Optional[NodeMetrics] = None):
        """
        Args:
            identity: This node's identity (secret and self-filter token)
            registry: Membership registry to admit peers into
            port: UDP port to listen on (0 picks a free port)
            default_http_port: HTTP port assumed for heartbeats that carry none
            host: Bind address
            buffer_size: Maximum datagram size read from the socket
            stop_event: Shared shutdown signal
            on_fatal: Called with the exception if the socket fails while running
            poll_interval: How often the blocking read wakes up to check stop_event
            metrics: Optional metrics to record admission outcomes on
        """
        self.identity = identity
        self.registry = registry
        self.host = host
        self.port = port
        self.default_http_port = default_http_port
        self.buffer_size = buffer_size
        self.stop_event = stop_event or threading.Event()
        self.on_fatal = on_fatal
        self.poll_interval = poll_interval
        self.metrics = metrics
        
        self.sock = None
        self.thread = None
    
    def start(self):
        """Bind the socket and start the receive thread. Raises DiscoverySetupError."""
        self.sock = open_listen_socket(self.port, self.host)
        self.sock.settimeout(self.poll_interval)
        self.port = self.sock.getsockname()[1]
        logger.info(f"Discovery listener bound on udp/{self.host}:{self.port}")
        
        self.thread = threading.Thread(target=self._run, name="discovery-listener", daemon=True)
        self.thread.start()
    
    def handle_datagram(self, data: bytes, source: Tuple[str, int]) -> Optional[PeerAddress]:
        """
        Apply the admission rule to one datagram.
        
        Returns the newly admitted peer, or None if the datagram was discarded.
        """
        try:
            heartbeat = decode(data)
        except HeartbeatDecodeError as e:
            logger.debug(f"Discarding malformed datagram from {source[0]}:{source[1]}: {e}")
            self._record("malformed")
            return None

        if heartbeat.secret != self.identity.secret:
            logger.debug(f"Discarding heartbeat from {source[0]} with secret {mask_secret(heartbeat.secret)}")
            self._record("bad_secret")
            return None
        if heartbeat.id == self.identity.id:
            self._record("self")
            return None

        peer = PeerAddress(host=source[0], http_port=heartbeat.http_port or self.default_http_port)
        if not self.registry.insert_if_absent(peer):
            self._record("duplicate")
            return None

        self._record("admitted")
        log_cluster_event("discover", f"Discovered new peer {peer} (id {heartbeat.id})", self.identity.id)
        return peer

    def _record(self, result: str):
        if self.metrics:
            self.metrics.heartbeats_received.labels(result=result).inc()
    
    def _run(self):
        try:
            while not self.stop_event.is_set():
                try:
                    data, source = self.sock.recvfrom(self.buffer_size)
                except socket.timeout:
                    continue
                except OSError as e:
                    if self.stop_event.is_set():
                        break
                    log_error("discovery", f"Discovery socket read failed: {e}", self.identity.id, e)
                    if self.on_fatal:
                        self.on_fatal(e)
                    break
                self.handle_datagram(data, source)
        finally:
            self.sock.close()
            logger.info("Discovery listener stopped")
    
    def stop(self, timeout: float = 3.0):
        self.stop_event.set()
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=timeout)


class DiscoveryBroadcaster:
    """Periodically broadcasts this node's heartbeat."""
    
    def __init__(self, identity: NodeIdentity, port: int,
                 broadcast_address: str = "255.255.255.255", interval: float = 2.0,
                 stop_event: Optional[threading.Event] = None,
                 on_fatal: Optional[FatalCallback] = None,
                 metrics: Optional[NodeMetrics] = None):
        self.identity = identity
        self.port = port
        self.broadcast_address = broadcast_address
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.on_fatal = on_fatal
        self.metrics = metrics
        
        self.sock = None
        self.thread = None
    
    def start(self):
        """Open the socket and start the broadcast thread. Raises DiscoverySetupError."""
        # Fails early if the secret makes the heartbeat too large.
        encode(self.identity)
        self.sock = open_broadcast_socket()
        logger.info(f"Broadcasting heartbeats to {self.broadcast_address}:{self.port} every {self.interval}s")
        
        self.thread = threading.Thread(target=self._run, name="discovery-broadcaster", daemon=True)
        self.thread.start()
    
    def broadcast_once(self) -> bool:
        """Send a single heartbeat. Returns False on a transient send failure."""
        data = encode(self.identity)
        try:
            self.sock.sendto(data, (self.broadcast_address, self.port))
        except OSError as e:
            if self.sock.fileno() == -1:
                raise
            logger.warning(f"Heartbeat send to {self.broadcast_address}:{self.port} failed: {e}")
            if self.metrics:
                self.metrics.heartbeats_sent.labels(status="error").inc()
            return False
        if self.metrics:
            self.metrics.heartbeats_sent.labels(status="ok").inc()
        return True
    
    def _run(self):
        try:
            while not self.stop_event.is_set():
                try:
                    self.broadcast_once()
                except OSError as e:
                    if self.stop_event.is_set():
                        break
                    log_error("discovery", f"Broadcast socket failed: {e}", self.identity.id, e)
                    if self.on_fatal:
                        self.on_fatal(e)
                    break
                self.stop_event.wait(self.interval)
        finally:
            self.sock.close()
            logger.info("Discovery broadcaster stopped")
    
    def stop(self, timeout: float = 3.0):
        self.stop_event.set()
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=timeout)
