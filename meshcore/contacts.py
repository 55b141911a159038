"""Contact directory used to attribute overheard mesh traffic.

Two indices are derived from the latest contact snapshot:
- 2-byte pubkey prefix ("A1B2") -> name
- 1-byte path hash (first pubkey byte) -> name

Path hashes collide often. The first contact registered for a hash keeps it;
later ones are not reachable through that index. Lookups never fail, they
fall back to the raw identifier in hex.
"""

import logging

from meshcore.model import Contact, SelfInfo

logger = logging.getLogger(__name__)


class ContactDirectory:
    """Process-local cache of contact names, rebuilt on each refresh."""

    def __init__(self) -> None:
        self._contacts: list[Contact] = []
        self._by_prefix: dict[str, str] = {}
        self._by_path_hash: dict[int, str] = {}

    @property
    def contacts(self) -> list[Contact]:
        return list(self._contacts)

    def __len__(self) -> int:
        return len(self._contacts)

    def rebuild(self, contacts: list[Contact]) -> None:
        """Replace both indices from a full contact list."""
        by_prefix: dict[str, str] = {}
        by_path_hash: dict[int, str] = {}
        collisions = 0
        for c in contacts:
            by_prefix[c.prefix] = c.name
            if c.path_hash in by_path_hash:
                collisions += 1
            else:
                by_path_hash[c.path_hash] = c.name

        self._contacts = list(contacts)
        self._by_prefix = by_prefix
        self._by_path_hash = by_path_hash
        if collisions:
            logger.debug(f"{collisions} contact(s) share a path hash with an earlier contact")
        logger.debug(f"Contact directory rebuilt with {len(contacts)} contacts")

    def add_self(self, info: SelfInfo) -> None:
        """Insert the local radio's identity without discarding other entries."""
        self._by_prefix[info.pubkey[:2].hex().upper()] = info.name
        self._by_path_hash.setdefault(info.pubkey[0], info.name)

    def resolve_by_prefix(self, prefix: bytes | str) -> str:
        """Resolve a 2-byte pubkey prefix to a name, or its hex form."""
        key = prefix[:2].hex().upper() if isinstance(prefix, bytes) else prefix.upper()
        return self._by_prefix.get(key, key)

    def resolve_by_path_byte(self, path_byte: int) -> str:
        """Resolve a 1-byte path hash to a name, or its hex form."""
        return self._by_path_hash.get(path_byte, f"{path_byte:02X}")

    def find_by_name(self, name: str) -> Contact | None:
        """Return the first contact whose name matches, ignoring case."""
        wanted = name.casefold()
        for c in self._contacts:
            if c.name.casefold() == wanted:
                return c
        return None
