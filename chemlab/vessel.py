from __future__ import annotations
from typing import Dict, List, Optional, Any, Iterable, Tuple
import numpy as np
import logging

from .chemicals import Chemical
from .constants import AMBIENT_TEMPERATURE, EPSILON, RESIDUE_THRESHOLD

logger = logging.getLogger(__name__)

VESSEL_KINDS = ("beaker", "flask", "test_tube", "graduated_cylinder", "tongs", "china_dish")


class ContentEntry:
    """A (chemical, amount) pair held by a vessel."""

    __slots__ = ("chemical", "amount")

    def __init__(self, chemical: Chemical, amount: float):
        self.chemical: Chemical = chemical
        self.amount: float = float(amount)

    def __repr__(self) -> str:
        return f"<ContentEntry {self.chemical.id}={self.amount:.3f}>"


class Vessel:
    """
    Mutable container for chemicals.

    Contents are keyed by chemical id and keep insertion order, so the reaction
    matcher sees entries in the order they were first poured in.
    Invariants kept by every operation in this module:
      - current_volume equals the sum of entry amounts (within EPSILON)
      - current_volume never exceeds capacity
      - no entry holds less than RESIDUE_THRESHOLD
    """

    def __init__(
        self,
        id: str,
        kind: str = "beaker",
        capacity: float = 500.0,
        name: Optional[str] = None,
        temperature: float = AMBIENT_TEMPERATURE,
        position: Optional[Iterable[float]] = None
    ):
        """
        Initialize a Vessel.

        Args:
            id (str): Unique vessel identifier, e.g. "beaker_1".
            kind (str): One of VESSEL_KINDS.
            capacity (float): Maximum volume in ml. Must be positive.
            name (str, optional): Display name.
            temperature (float): Starting temperature in Celsius.
            position (iterable, optional): 3D position owned by the rendering layer. Defaults to origin.
        """
        if capacity <= 0:
            raise ValueError(f"Vessel capacity must be > 0, got {capacity}")
        if kind not in VESSEL_KINDS:
            raise ValueError(f"Unknown vessel kind: {kind}")

        self.id: str = id
        self.kind: str = kind
        self.name: Optional[str] = name
        self.capacity: float = float(capacity)
        self.current_volume: float = 0.0
        self.temperature: float = float(temperature)
        self.tilt_angle: float = 0.0
        self.contents: Dict[str, ContentEntry] = {}
        self.position: np.ndarray = np.array(position if position is not None else np.zeros(3), dtype=float)

        logger.debug(f"Created Vessel {self.id}: {self.kind} capacity={self.capacity}")

    # -----------------------
    # Queries
    # -----------------------
    @property
    def free_space(self) -> float:
        return max(0.0, self.capacity - self.current_volume)

    @property
    def is_empty(self) -> bool:
        return self.current_volume <= EPSILON

    def has_chemical(self, chemical_id: str) -> bool:
        return chemical_id in self.contents

    def amount_of(self, chemical_id: str) -> float:
        entry = self.contents.get(chemical_id)
        return entry.amount if entry is not None else 0.0

    def entries(self) -> List[ContentEntry]:
        return list(self.contents.values())

    # -----------------------
    # Mutations
    # -----------------------
    def fill(self, chemical: Chemical, requested_amount: float) -> float:
        """
        Add up to requested_amount of a chemical, clamped to the free space.

        Args:
            chemical (Chemical): Chemical to add.
            requested_amount (float): Volume in ml.

        Returns:
            float: Volume actually added (0.0 when the call was a no-op).
        """
        actual = min(float(requested_amount), self.capacity - self.current_volume)
        if actual <= 0:
            logger.debug(f"fill on {self.id} ignored (requested={requested_amount}, free={self.free_space})")
            return 0.0
        self._add(chemical, actual)
        self.current_volume += actual
        return actual

    def clear(self) -> None:
        """Empty the vessel and level it."""
        self.contents = {}
        self.current_volume = 0.0
        self.tilt_angle = 0.0

    def replace_contents(self, products: List[Chemical], total_volume: Optional[float] = None) -> None:
        """
        Replace every entry with the given products, splitting the volume evenly.

        The split is per product, not per species mass; the reaction matcher
        relies on this simplification.
        """
        total = self.current_volume if total_volume is None else min(float(total_volume), self.capacity)
        self.contents = {}
        if products and total > EPSILON:
            share = total / len(products)
            for product in products:
                self._add(product, share)
        self.current_volume = self._sum_contents()

    def replace_with(self, chemical: Chemical, amount: float) -> None:
        """Replace the contents with a single entry of the given amount."""
        self.contents = {}
        amount = min(max(0.0, float(amount)), self.capacity)
        if amount > RESIDUE_THRESHOLD:
            self._add(chemical, amount)
        self.current_volume = self._sum_contents()

    def _add(self, chemical: Chemical, amount: float) -> None:
        entry = self.contents.get(chemical.id)
        if entry is not None:
            entry.amount += amount
        else:
            self.contents[chemical.id] = ContentEntry(chemical, amount)

    def _sum_contents(self) -> float:
        return float(sum(e.amount for e in self.contents.values()))

    def _remove_fraction(self, fraction: float) -> List[Tuple[Chemical, float]]:
        """
        Remove the same fraction from every entry and return the removed parts.
        Residue below RESIDUE_THRESHOLD leaves with the removed part, so nothing
        is lost and the volume recomputed from the entries matches their sum.
        """
        removed: List[Tuple[Chemical, float]] = []
        remaining: Dict[str, ContentEntry] = {}
        for cid, entry in self.contents.items():
            part = entry.amount * fraction
            left = entry.amount - part
            if left < RESIDUE_THRESHOLD:
                part, left = entry.amount, 0.0
            if part > 0:
                removed.append((entry.chemical, part))
            if left > 0:
                remaining[cid] = ContentEntry(entry.chemical, left)
        self.contents = remaining
        self.current_volume = self._sum_contents()
        return removed

    # -----------------------
    # Snapshot
    # -----------------------
    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "capacity": self.capacity,
            "current_volume": float(self.current_volume),
            "temperature": float(self.temperature),
            "tilt_angle": float(self.tilt_angle),
            "contents": [
                {"chemical": e.chemical.id, "name": e.chemical.name, "amount": float(e.amount)}
                for e in self.contents.values()
            ],
            "position": self.position.tolist(),
        }

    def __repr__(self) -> str:
        return (
            f"<Vessel {self.id} kind={self.kind} volume={self.current_volume:.2f}/{self.capacity:.0f} "
            f"T={self.temperature:.1f}>"
        )


# -----------------------
# Transfers
# -----------------------

def transfer(source: Vessel, destination: Vessel, requested_amount: float) -> float:
    """
    Pour from source into destination, preserving the source's composition.

    actual = min(requested, source volume, destination free space). The same
    fraction (actual / source volume) is taken from every source entry and the
    absolute parts are merged into the destination by chemical id.

    Returns:
        float: Volume moved (0.0 for a no-op).
    """
    if source is destination:
        return 0.0
    actual = min(float(requested_amount), source.current_volume, destination.capacity - destination.current_volume)
    if actual <= 0 or source.current_volume <= EPSILON:
        logger.debug(f"transfer {source.id}->{destination.id} ignored (requested={requested_amount})")
        return 0.0

    before = source.current_volume
    fraction = min(1.0, actual / before)
    removed = source._remove_fraction(fraction)
    moved = before - source.current_volume
    for chemical, part in removed:
        destination._add(chemical, part)
    destination.current_volume = destination._sum_contents()
    return moved


def drain_into_buffer(source: Vessel, buffer, requested_amount: float) -> float:
    """
    Filtration variant of transfer: the removed volume feeds a scalar buffer
    (anything with a ``receive(amount)`` method) instead of a vessel.

    Returns:
        float: Volume moved into the buffer.
    """
    actual = min(float(requested_amount), source.current_volume)
    if actual <= 0 or source.current_volume <= EPSILON:
        return 0.0
    before = source.current_volume
    source._remove_fraction(min(1.0, actual / before))
    moved = before - source.current_volume
    buffer.receive(moved)
    return moved
