from __future__ import annotations
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple
import logging

from .constants import ACTION_VOCABULARY

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "+"

EXACT = "exact"
SUPERSET = "superset"


class SignatureKey:
    """
    Structured outcome key: a set of chemical ids plus a set of action ids.

    The tuples keep the order the key was written or derived in, for display
    and for data files; equality and hashing only look at the two sets.
    """

    __slots__ = ("chemicals", "actions")

    def __init__(self, chemicals: Iterable[str], actions: Iterable[str] = ()):
        self.chemicals: Tuple[str, ...] = tuple(dict.fromkeys(chemicals))
        self.actions: Tuple[str, ...] = tuple(dict.fromkeys(actions))

    @classmethod
    def parse(cls, text: str) -> "SignatureKey":
        """Split "water+salt+stir" into chemicals and actions by the action vocabulary."""
        tokens = [t.strip() for t in text.split(KEY_SEPARATOR) if t.strip()]
        if not tokens:
            raise ValueError(f"Empty signature key: {text!r}")
        return cls([t for t in tokens if t not in ACTION_VOCABULARY],
                   [t for t in tokens if t in ACTION_VOCABULARY])

    @property
    def chemical_set(self) -> FrozenSet[str]:
        return frozenset(self.chemicals)

    @property
    def action_set(self) -> FrozenSet[str]:
        return frozenset(self.actions)

    def covered_by(self, chemicals: Iterable[str], actions: Iterable[str]) -> bool:
        """True when the given chemicals and actions include everything this key requires."""
        return self.chemical_set <= frozenset(chemicals) and self.action_set <= frozenset(actions)

    def text(self) -> str:
        return KEY_SEPARATOR.join(self.chemicals + self.actions)

    def sorted_text(self) -> str:
        return KEY_SEPARATOR.join(tuple(sorted(self.chemicals)) + tuple(sorted(self.actions)))

    def __eq__(self, other) -> bool:
        return (isinstance(other, SignatureKey)
                and self.chemical_set == other.chemical_set
                and self.action_set == other.action_set)

    def __hash__(self) -> int:
        return hash((self.chemical_set, self.action_set))

    def __repr__(self) -> str:
        return f"<SignatureKey {self.text()}>"

    def __str__(self) -> str:
        return self.text()


def candidate_keys(chemicals: Sequence[str], actions: Sequence[str]) -> List[SignatureKey]:
    """
    Ranked candidate keys, most specific first:
      1. all chemicals + all actions
      2. all chemicals + each single action, in the order performed
      3. chemicals alone
    As-added and sorted spellings of the same tier are one set-valued key, so
    the list holds each distinct key once at its best rank.
    """
    ranked: List[SignatureKey] = [SignatureKey(chemicals, actions)]
    for action in actions:
        ranked.append(SignatureKey(chemicals, [action]))
    ranked.append(SignatureKey(chemicals))

    out: List[SignatureKey] = []
    seen = set()
    for key in ranked:
        if key not in seen:
            seen.add(key)
            out.append(key)
    return out


class OutcomeTable:
    """
    Ordered mapping SignatureKey -> outcome with a two-pass lookup.

    lookup() first probes the ranked candidates for an exact key; only when
    none is defined does it scan the table in definition order for the first
    key the current chemicals and actions cover.
    """

    def __init__(self, items: Optional[Iterable[Tuple[SignatureKey, Any]]] = None):
        self._entries: Dict[SignatureKey, Any] = {}
        for key, value in items or ():
            self.add(key, value)

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "OutcomeTable":
        return cls((SignatureKey.parse(k), v) for k, v in mapping.items())

    def add(self, key: SignatureKey, value: Any) -> None:
        if key in self._entries:
            logger.warning(f"Duplicate outcome key {key.text()}; keeping the later definition")
        self._entries[key] = value

    def get(self, key: SignatureKey) -> Optional[Any]:
        return self._entries.get(key)

    def keys(self) -> List[SignatureKey]:
        return list(self._entries.keys())

    def __contains__(self, key: SignatureKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, chemicals: Sequence[str], actions: Sequence[str]) -> Optional[Tuple[SignatureKey, Any, str]]:
        """
        Returns:
            (key, outcome, pass) with pass in {"exact", "superset"}, or None.
        """
        for candidate in candidate_keys(chemicals, actions):
            if candidate in self._entries:
                # return the stored key so callers see the spelling from the data file
                stored = next(k for k in self._entries if k == candidate)
                return stored, self._entries[candidate], EXACT
        for key, value in self._entries.items():
            if key.covered_by(chemicals, actions):
                return key, value, SUPERSET
        return None
