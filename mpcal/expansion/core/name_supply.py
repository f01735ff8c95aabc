import logging
from typing import Dict, Iterable, Set

logger = logging.getLogger(__name__)


class FreshNameSupply:
    """
    Hands out names that are unique across the whole output block.

    The supply is seeded with every name already visible in the input, so an
    introduced name never collides with a user name. `fresh("x")` returns `x` if
    it is still free, otherwise the first free name among `x1`, `x2`, ...
    The sequence only depends on the order of requests, which keeps the pass
    deterministic.
    """

    def __init__(self, reserved: Iterable[str] = ()):
        self._used: Set[str] = set(reserved)
        self._counters: Dict[str, int] = {}

    def reserve(self, name: str):
        self._used.add(name)

    def is_used(self, name: str) -> bool:
        return name in self._used

    def fresh(self, base: str) -> str:
        candidate = base
        while candidate in self._used:
            counter = self._counters.get(base, 0) + 1
            self._counters[base] = counter
            candidate = f"{base}{counter}"
        self._used.add(candidate)
        logger.debug("Fresh name '%s' (requested '%s')", candidate, base)
        return candidate
