"""Session registry: connected peers and their declared roles."""

from __future__ import annotations

import logging

from camrelay.core.types import Peer, PeerConnection, PeerRole

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns the lifecycle of every connected `Peer`.

    Rooms only hold peer ids; the registry is the single place a peer is
    created or destroyed.
    """

    def __init__(self) -> None:
        self._peers: dict[str, Peer] = {}

    def connect(self, peer_id: str, connection: PeerConnection | None = None) -> Peer:
        """Create (or replace) the peer for a freshly opened connection."""

        peer = Peer(peer_id=peer_id, connection=connection)
        self._peers[peer_id] = peer
        logger.info("Peer connected: %s", peer_id)
        return peer

    def register(self, peer_id: str, role: PeerRole | str) -> Peer | None:
        """Set the declared role of a peer.

        Idempotent; a later call overwrites the role. Unknown ids are ignored.
        """

        peer = self._peers.get(peer_id)
        if peer is None:
            return None
        peer.role = PeerRole.parse(role)
        logger.info("Peer %s registered as %s", peer_id, peer.role.value)
        return peer

    def lookup(self, peer_id: str) -> Peer | None:
        return self._peers.get(peer_id)

    def disconnect(self, peer_id: str) -> str | None:
        """Remove a peer and return the room it was in (if any).

        Safe to call twice; the second call returns `None`.
        """

        peer = self._peers.pop(peer_id, None)
        if peer is None:
            return None
        logger.info("Peer disconnected: %s (%s)", peer_id, peer.role.value)
        return peer.room_id

    def clear(self) -> None:
        self._peers.clear()

    def __len__(self) -> int:
        return len(self._peers)

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._peers
