from pathlib import Path
import json
import logging
from typing import Dict, Any, Optional, Union

logger = logging.getLogger(__name__)

# Default path to chemicals.json relative to the package folder
CHEMICALS_JSON: Path = Path(__file__).parent.parent / "data" / "chemicals.json"

CATEGORIES = ("acid", "base", "metal", "salt", "water", "indicator", "neutral")


class Chemical:
    """
    A chemical entity from the registry.

    Chemicals are shared by reference between vessels and rules and are never
    mutated after construction. Two chemicals are equal when their ids match.
    """

    __slots__ = ("id", "name", "formula", "color", "category", "concentration")

    def __init__(
        self,
        id: str,
        name: str,
        category: str = "neutral",
        color: str = "#ffffff",
        formula: Optional[str] = None,
        concentration: Optional[float] = None
    ):
        """
        Initialize a Chemical.

        Args:
            id (str): Registry identifier, e.g. "sodium_hydroxide".
            name (str): Display name.
            category (str): One of CATEGORIES; unknown values fall back to "neutral".
            color (str): Display color as a hex string.
            formula (str, optional): Chemical formula for labels.
            concentration (float, optional): Molar concentration for stock solutions.
        """
        if category not in CATEGORIES:
            logger.warning(f"Unknown category '{category}' for chemical '{id}'; using 'neutral'.")
            category = "neutral"
        self.id: str = id
        self.name: str = name
        self.category: str = category
        self.color: str = color
        self.formula: Optional[str] = formula
        self.concentration: Optional[float] = concentration

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "name": self.name, "category": self.category, "color": self.color}
        if self.formula is not None:
            out["formula"] = self.formula
        if self.concentration is not None:
            out["concentration"] = self.concentration
        return out

    def __eq__(self, other) -> bool:
        return isinstance(other, Chemical) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"<Chemical {self.id} category={self.category}>"


# In-memory registry keyed by chemical id
CHEMICAL_DATA: Dict[str, Chemical] = {}


def _chemical_from_dict(raw: Dict[str, Any]) -> Chemical:
    return Chemical(
        id=str(raw["id"]),
        name=str(raw.get("name", raw["id"])),
        category=str(raw.get("category", "neutral")),
        color=str(raw.get("color", "#ffffff")),
        formula=raw.get("formula"),
        concentration=raw.get("concentration"),
    )


def load_chemicals(path: Union[Path, str] = None) -> Dict[str, Chemical]:
    """
    Load chemicals.json into the CHEMICAL_DATA registry.
    If path is not provided, uses the default CHEMICALS_JSON.

    Returns
    -------
    Dict[str, Chemical]
        A mapping from chemical id to its Chemical.
    """
    global CHEMICAL_DATA
    if path is None:
        path = CHEMICALS_JSON

    path = Path(path)
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)

    out: Dict[str, Chemical] = {}
    entries = raw.get("chemicals", []) if isinstance(raw, dict) else raw
    for entry in entries:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ValueError(f"Malformed chemical entry in {path}: {entry!r}")
        chem = _chemical_from_dict(entry)
        out[chem.id] = chem

    CHEMICAL_DATA = out
    logger.info(f"Loaded {len(CHEMICAL_DATA)} chemicals from {path}")
    return CHEMICAL_DATA


def get_chemical(chemical_id: str) -> Optional[Chemical]:
    """
    Return the registered chemical for an id, or None when it is unknown.
    Automatically loads CHEMICAL_DATA if it is empty.
    """
    if not CHEMICAL_DATA:
        load_chemicals()
    return CHEMICAL_DATA.get(chemical_id)
