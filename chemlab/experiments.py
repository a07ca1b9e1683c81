from pathlib import Path
import json
import logging
from typing import Dict, Any, List, Optional, Union

from .signatures import OutcomeTable, SignatureKey

logger = logging.getLogger(__name__)

EXPERIMENTS_JSON: Path = Path(__file__).parent.parent / "data" / "experiments.json"

FAMILIES = ("single", "two_phase", "three_phase", "drop_counted")


class Outcome:
    """What the learner sees when a signature key is reached."""

    __slots__ = ("observation", "explanation", "success", "visual", "result_type")

    def __init__(self, observation: str, explanation: str = "", success: bool = False,
                 visual: Optional[Dict[str, Any]] = None, result_type: Optional[str] = None):
        self.observation = observation
        self.explanation = explanation
        self.success = bool(success)
        self.visual: Dict[str, Any] = dict(visual or {})
        self.result_type = result_type

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "observation": self.observation,
            "explanation": self.explanation,
            "success": self.success,
            "visual": dict(self.visual),
        }
        if self.result_type is not None:
            out["result_type"] = self.result_type
        return out


class ChemicalRequirement:
    __slots__ = ("id", "name", "color")

    def __init__(self, id: str, name: str, color: str = "#ffffff"):
        self.id = id
        self.name = name
        self.color = color


class ExperimentDefinition:
    """
    Static curriculum record. Immutable once loaded.
    """

    def __init__(
        self,
        id: str,
        title: str,
        aim: str,
        family: str = "single",
        chapter: str = "",
        class_level: int = 0,
        apparatus: Optional[List[str]] = None,
        chemicals: Optional[List[ChemicalRequirement]] = None,
        procedure_steps: Optional[List[str]] = None,
        outcomes: Optional[OutcomeTable] = None,
        conclusion: str = ""
    ):
        if family not in FAMILIES:
            raise ValueError(f"Experiment {id} has unknown family '{family}'")
        self.id = id
        self.title = title
        self.aim = aim
        self.family = family
        self.chapter = chapter
        self.class_level = int(class_level)
        self.apparatus: List[str] = list(apparatus or [])
        self.chemicals: List[ChemicalRequirement] = list(chemicals or [])
        self.procedure_steps: List[str] = list(procedure_steps or [])
        self.outcomes: OutcomeTable = outcomes if outcomes is not None else OutcomeTable()
        self.conclusion = conclusion

    @property
    def total_steps(self) -> int:
        return len(self.procedure_steps)

    def chemical_name(self, chemical_id: str) -> str:
        for req in self.chemicals:
            if req.id == chemical_id:
                return req.name
        return chemical_id

    def outcome_for(self, key_text: str) -> Optional[Outcome]:
        return self.outcomes.get(SignatureKey.parse(key_text))

    def __repr__(self) -> str:
        return f"<ExperimentDefinition {self.id} family={self.family}>"


def _outcome_from_dict(raw: Dict[str, Any]) -> Outcome:
    return Outcome(
        observation=str(raw["observation"]),
        explanation=str(raw.get("explanation", "")),
        success=bool(raw.get("success", False)),
        visual=raw.get("visual"),
        result_type=raw.get("result_type"),
    )


def _experiment_from_dict(raw: Dict[str, Any]) -> ExperimentDefinition:
    outcomes = OutcomeTable()
    for key_text, outcome in raw.get("reactions", {}).items():
        outcomes.add(SignatureKey.parse(key_text), _outcome_from_dict(outcome))
    return ExperimentDefinition(
        id=str(raw["id"]),
        title=str(raw.get("title", raw["id"])),
        aim=str(raw.get("aim", "")),
        family=str(raw.get("family", "single")),
        chapter=str(raw.get("chapter", "")),
        class_level=int(raw.get("class_level", 0)),
        apparatus=list(raw.get("apparatus", [])),
        chemicals=[ChemicalRequirement(c["id"], c.get("name", c["id"]), c.get("color", "#ffffff"))
                   for c in raw.get("chemicals", [])],
        procedure_steps=list(raw.get("procedure_steps", [])),
        outcomes=outcomes,
        conclusion=str(raw.get("conclusion", "")),
    )


# In-memory catalog keyed by experiment id, in file order
EXPERIMENT_DATA: Dict[str, ExperimentDefinition] = {}


def load_experiments(path: Union[Path, str] = None) -> Dict[str, ExperimentDefinition]:
    """
    Load experiments.json into EXPERIMENT_DATA.
    If path is not provided, uses the default EXPERIMENTS_JSON.
    """
    global EXPERIMENT_DATA
    if path is None:
        path = EXPERIMENTS_JSON
    path = Path(path)
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)

    out: Dict[str, ExperimentDefinition] = {}
    entries = raw.get("experiments", []) if isinstance(raw, dict) else raw
    for entry in entries:
        try:
            exp = _experiment_from_dict(entry)
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed experiment entry in {path}: {entry!r}") from e
        out[exp.id] = exp

    EXPERIMENT_DATA = out
    logger.info(f"Loaded {len(EXPERIMENT_DATA)} experiments from {path}")
    return EXPERIMENT_DATA


def get_experiment(experiment_id: str) -> Optional[ExperimentDefinition]:
    """Return the experiment for an id, or None when it is unknown."""
    if not EXPERIMENT_DATA:
        load_experiments()
    return EXPERIMENT_DATA.get(experiment_id)


def all_experiments() -> List[ExperimentDefinition]:
    if not EXPERIMENT_DATA:
        load_experiments()
    return list(EXPERIMENT_DATA.values())


def experiments_by_class(class_level: int) -> List[ExperimentDefinition]:
    return [e for e in all_experiments() if e.class_level == class_level]


def total_experiments() -> int:
    return len(all_experiments())
