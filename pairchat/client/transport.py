"""Peer-transport capability used by the negotiation state machine.

The state machine only sees :class:`PeerTransport`. Session descriptions are
plain ``{"type": ..., "sdp": ...}`` dicts and candidates are the browser's
``RTCIceCandidateInit`` shape (``candidate``, ``sdpMid``,
``sdpMLineIndex``), so payloads cross the relay unchanged in both
directions.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from ..constants import ICE_SERVERS
from ..errors import TransportError
from ..logging_config import get_logger

logger = get_logger(__name__)

CandidateCallback = Callable[[Dict[str, Any]], None]
StateCallback = Callable[[str], None]


class PeerTransport(Protocol):
    async def create_offer(self) -> Dict[str, Any]:
        ...

    async def create_answer(self) -> Dict[str, Any]:
        ...

    async def set_local_description(self, description: Dict[str, Any]) -> None:
        ...

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        ...

    async def add_remote_candidate(self, candidate: Any) -> None:
        ...

    def on_local_candidate(self, callback: CandidateCallback) -> None:
        ...

    def on_connection_state_change(self, callback: StateCallback) -> None:
        ...

    async def close(self) -> None:
        ...


# Called with the room id; raises TransportError if no transport can be made.
TransportFactory = Callable[[str], PeerTransport]


def candidates_from_sdp(sdp: str) -> List[Dict[str, Any]]:
    """Extract every ``a=candidate`` line of *sdp* as an RTCIceCandidateInit dict."""
    found: List[Dict[str, Any]] = []
    mline_index = -1
    mid: Optional[str] = None
    for line in sdp.splitlines():
        line = line.strip()
        if line.startswith("m="):
            mline_index += 1
            mid = None
        elif line.startswith("a=mid:"):
            mid = line[len("a=mid:"):]
        elif line.startswith("a=candidate:") and mline_index >= 0:
            found.append({"candidate": line[2:], "sdpMid": mid, "sdpMLineIndex": mline_index})
    return found


class AiortcTransport:
    """``PeerTransport`` backed by an aiortc ``RTCPeerConnection``.

    aiortc gathers all candidates while applying the local description and
    writes them into the SDP instead of emitting them one by one; they are
    pulled back out and reported individually, in SDP order, once the
    current call stack has finished.
    """

    def __init__(self, ice_servers: Sequence[str] = ICE_SERVERS, tracks: Iterable[Any] = ()):
        config = RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in ice_servers])
        self.pc = RTCPeerConnection(configuration=config)
        self.remote_tracks: List[Any] = []
        self._candidate_callback: Optional[CandidateCallback] = None
        self._state_callback: Optional[StateCallback] = None
        self.channel = None

        added = False
        for track in tracks:
            self.pc.addTrack(track)
            added = True
        if not added:
            # Both sides open the same pre-negotiated channel so an offer always has a section.
            self.channel = self.pc.createDataChannel("pairchat", negotiated=True, id=0)

        @self.pc.on("connectionstatechange")
        def _on_connection_state():
            if self._state_callback is not None:
                self._state_callback(self.pc.connectionState)

        @self.pc.on("track")
        def _on_track(track):
            logger.info(f"Received remote {track.kind} track")
            self.remote_tracks.append(track)

    @classmethod
    def factory(cls, ice_servers: Sequence[str] = ICE_SERVERS, tracks: Iterable[Any] = ()) -> TransportFactory:
        tracks = list(tracks)

        def _create(room_id: str) -> "AiortcTransport":
            try:
                return cls(ice_servers=ice_servers, tracks=tracks)
            except Exception as exc:
                raise TransportError(f"Could not create peer connection for {room_id}: {exc}") from exc

        return _create

    def on_local_candidate(self, callback: CandidateCallback) -> None:
        self._candidate_callback = callback

    def on_connection_state_change(self, callback: StateCallback) -> None:
        self._state_callback = callback

    async def create_offer(self) -> Dict[str, Any]:
        try:
            offer = await self.pc.createOffer()
        except Exception as exc:
            raise TransportError(f"createOffer failed: {exc}") from exc
        return {"type": offer.type, "sdp": offer.sdp}

    async def create_answer(self) -> Dict[str, Any]:
        try:
            answer = await self.pc.createAnswer()
        except Exception as exc:
            raise TransportError(f"createAnswer failed: {exc}") from exc
        return {"type": answer.type, "sdp": answer.sdp}

    async def set_local_description(self, description: Dict[str, Any]) -> None:
        try:
            await self.pc.setLocalDescription(RTCSessionDescription(sdp=description["sdp"], type=description["type"]))
        except Exception as exc:
            raise TransportError(f"setLocalDescription failed: {exc}") from exc
        asyncio.get_running_loop().call_soon(self._emit_gathered_candidates)

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        try:
            await self.pc.setRemoteDescription(RTCSessionDescription(sdp=description["sdp"], type=description["type"]))
        except Exception as exc:
            raise TransportError(f"setRemoteDescription failed: {exc}") from exc

    async def add_remote_candidate(self, candidate: Any) -> None:
        if not candidate or not candidate.get("candidate"):
            # End-of-candidates marker.
            return
        line = candidate["candidate"]
        if line.startswith("candidate:"):
            line = line[len("candidate:"):]
        try:
            ice = candidate_from_sdp(line)
            ice.sdpMid = candidate.get("sdpMid")
            ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
            await self.pc.addIceCandidate(ice)
        except Exception as exc:
            raise TransportError(f"addIceCandidate failed: {exc}") from exc

    async def close(self) -> None:
        await self.pc.close()

    def _emit_gathered_candidates(self) -> None:
        if self._candidate_callback is None or self.pc.localDescription is None:
            return
        for candidate in candidates_from_sdp(self.pc.localDescription.sdp):
            self._candidate_callback(candidate)


__all__ = [
    "PeerTransport",
    "TransportFactory",
    "AiortcTransport",
    "candidates_from_sdp",
]
