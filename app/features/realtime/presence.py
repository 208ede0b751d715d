# Realtime Feature - Presence Tracker

from typing import Dict, Iterable, List, Optional, Set


class PresenceTracker:
    """
    In-memory record of which users currently have an authenticated
    connection. Advisory only: never persisted, empty after a restart.
    """

    def __init__(self):
        # {user_id: set of sids}
        self._connections: Dict[str, Set[str]] = {}

    def add(self, user_id: str, sid: str) -> bool:
        """Register a connection. Returns True if the user just came online."""
        sids = self._connections.setdefault(user_id, set())
        came_online = not sids
        sids.add(sid)
        return came_online

    def remove(self, user_id: str, sid: str) -> bool:
        """Drop a connection. Returns True if the user just went offline."""
        sids = self._connections.get(user_id)
        if not sids or sid not in sids:
            return False

        sids.discard(sid)
        if sids:
            return False

        del self._connections[user_id]
        return True

    def is_online(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    def connections_of(self, user_id: str) -> Set[str]:
        return set(self._connections.get(user_id, ()))

    def online_users(self, user_ids: Optional[Iterable[str]] = None) -> List[str]:
        """Online users, optionally restricted to the given ids."""
        if user_ids is None:
            return sorted(self._connections)
        return [uid for uid in user_ids if self.is_online(uid)]

    def reset(self):
        self._connections.clear()


presence = PresenceTracker()
