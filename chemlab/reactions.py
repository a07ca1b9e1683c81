from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional, Any, Tuple, Union
import json
import logging

from .chemicals import Chemical, CATEGORIES, get_chemical
from .vessel import Vessel

logger = logging.getLogger(__name__)

REACTIONS_JSON: Path = Path(__file__).parent.parent / "data" / "reactions.json"

EFFECT_TAGS = ("bubbles", "smoke", "precipitate", "color_change", "heat", "explosion", "steam", "boiling")

MSG_NOT_ENOUGH = "Not enough chemicals to react."
MSG_NO_REACTION = "No reaction occurred."


# -----------------------
# Rule base
# -----------------------
class ReactionRule:
    """
    Declarative rule: an unordered pair of categories yields a list of products.
    """

    def __init__(
        self,
        id: str,
        name: str,
        reactants: Tuple[str, str],
        products: List[Chemical],
        description: str = "",
        effects: Optional[List[str]] = None,
        result_color: str = "#ffffff",
        exothermic: bool = False
    ):
        if len(reactants) != 2:
            raise ValueError(f"Reaction {id} needs exactly two reactant categories, got {reactants!r}")
        for cat in reactants:
            if cat not in CATEGORIES:
                raise ValueError(f"Reaction {id} uses unknown category '{cat}'")
        effects = list(effects or [])
        for tag in effects:
            if tag not in EFFECT_TAGS:
                raise ValueError(f"Reaction {id} uses unknown effect '{tag}'")

        self.id = id
        self.name = name
        self.description = description
        self.reactants: Tuple[str, str] = (reactants[0], reactants[1])
        self.products: List[Chemical] = list(products)
        self.effects: List[str] = effects
        self.result_color = result_color
        self.exothermic = bool(exothermic)

    def matches(self, cat1: str, cat2: str) -> bool:
        a, b = self.reactants
        return (a == cat1 and b == cat2) or (a == cat2 and b == cat1)

    def __repr__(self) -> str:
        return f"<ReactionRule {self.id} {self.reactants[0]}+{self.reactants[1]}>"


REACTION_RULES: List[ReactionRule] = []


def load_reactions(path: Union[Path, str] = None) -> List[ReactionRule]:
    """
    Load reactions.json into REACTION_RULES, keeping file order (the matcher is
    first-match-wins). Product ids must exist in the chemical registry.
    """
    global REACTION_RULES
    if path is None:
        path = REACTIONS_JSON
    path = Path(path)
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)

    rules: List[ReactionRule] = []
    entries = raw.get("reactions", []) if isinstance(raw, dict) else raw
    for entry in entries:
        try:
            products = []
            for pid in entry["products"]:
                chem = get_chemical(pid)
                if chem is None:
                    raise ValueError(f"Unknown product '{pid}' in reaction {entry.get('id')}")
                products.append(chem)
            rules.append(ReactionRule(
                id=str(entry["id"]),
                name=str(entry.get("name", entry["id"])),
                reactants=tuple(entry["reactants"]),
                products=products,
                description=str(entry.get("description", "")),
                effects=entry.get("effects", []),
                result_color=str(entry.get("result_color", "#ffffff")),
                exothermic=bool(entry.get("exothermic", False)),
            ))
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed reaction entry in {path}: {entry!r}") from e

    REACTION_RULES = rules
    logger.info(f"Loaded {len(REACTION_RULES)} reaction rules from {path}")
    return REACTION_RULES


def get_reaction_rules() -> List[ReactionRule]:
    if not REACTION_RULES:
        load_reactions()
    return REACTION_RULES


# -----------------------
# Matcher
# -----------------------
class ReactionResult:
    """Outcome of a matcher scan. ``rule`` is None when nothing reacted."""

    __slots__ = ("occurred", "rule", "products", "message")

    def __init__(self, occurred: bool, message: str, rule: Optional[ReactionRule] = None,
                 products: Optional[List[Chemical]] = None):
        self.occurred = occurred
        self.rule = rule
        self.products = list(products or [])
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "occurred": self.occurred,
            "rule": self.rule.id if self.rule else None,
            "products": [p.id for p in self.products],
            "message": self.message,
        }

    def __repr__(self) -> str:
        return f"<ReactionResult occurred={self.occurred} rule={self.rule.id if self.rule else None}>"


class ReactionMatcher:
    """
    Finds the first rule matching any unordered pair of a vessel's entries.

    Pairs are scanned in entry order (i < j) and rules in file order, so the
    result depends on both orders.
    """

    def __init__(self, rules: Optional[List[ReactionRule]] = None):
        self.rules: List[ReactionRule] = list(rules) if rules is not None else list(get_reaction_rules())

    def find_rule(self, cat1: str, cat2: str) -> Optional[ReactionRule]:
        for rule in self.rules:
            if rule.matches(cat1, cat2):
                return rule
        return None

    def check(self, vessel: Vessel) -> ReactionResult:
        """Scan without mutating the vessel."""
        entries = vessel.entries()
        if len(entries) < 2:
            return ReactionResult(False, MSG_NOT_ENOUGH)
        for i in range(len(entries)):
            for j in range(i + 1, len(entries)):
                rule = self.find_rule(entries[i].chemical.category, entries[j].chemical.category)
                if rule is not None:
                    return ReactionResult(True, f"Reaction! {rule.name}: {rule.description}",
                                          rule=rule, products=rule.products)
        return ReactionResult(False, MSG_NO_REACTION)

    def apply(self, vessel: Vessel, result: ReactionResult) -> List[str]:
        """
        Replace the vessel contents with the matched products and return the
        effect tags to start. A result with occurred=False leaves the vessel alone.
        """
        if not result.occurred or result.rule is None:
            return []
        prior = vessel.current_volume
        vessel.replace_contents(result.products, prior)
        logger.info(f"{result.rule.name} in {vessel.id}: {prior:.1f} ml -> "
                    f"{', '.join(p.id for p in result.products)}")
        return list(result.rule.effects)

    def react(self, vessel: Vessel) -> Tuple[ReactionResult, List[str]]:
        result = self.check(vessel)
        return result, self.apply(vessel, result)
