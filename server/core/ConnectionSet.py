from __future__ import annotations

from typing import Iterator, List, Set

from server.core.ConnectionLink import ConnectionLink


class ConnectionSet:
    """
    Currently open connections, keyed by identity.

    A link is a member from the moment it is accepted until its close is
    observed. All mutation happens on the server's event loop, so no lock is
    taken; a thread-per-connection server would need to guard this with a mutex.
    """

    def __init__(self) -> None:
        self._links: Set[ConnectionLink] = set()

    def add(self, link: ConnectionLink) -> int:
        """Add a link and return the new active count."""
        self._links.add(link)
        return len(self._links)

    def discard(self, link: ConnectionLink) -> int:
        """Remove a link (no-op if absent) and return the new active count."""
        self._links.discard(link)
        return len(self._links)

    def snapshot(self) -> List[ConnectionLink]:
        # Closing a link removes it from the set, so iterate over a copy
        return list(self._links)

    def __len__(self) -> int:
        return len(self._links)

    def __contains__(self, link: object) -> bool:
        return link in self._links

    def __iter__(self) -> Iterator[ConnectionLink]:
        return iter(self.snapshot())
