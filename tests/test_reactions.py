import pytest

from chemlab.chemicals import get_chemical
from chemlab.reactions import (
    ReactionMatcher, ReactionRule, MSG_NOT_ENOUGH, MSG_NO_REACTION, load_reactions,
)
from chemlab.vessel import Vessel


def _vessel(*fills):
    v = Vessel("beaker_1", capacity=500)
    for cid, amount in fills:
        v.fill(get_chemical(cid), amount)
    return v


def test_not_enough_chemicals():
    result = ReactionMatcher().check(_vessel(("hydrochloric_acid", 50)))
    assert not result.occurred
    assert result.message == MSG_NOT_ENOUGH


def test_no_reaction():
    result = ReactionMatcher().check(_vessel(("water", 50), ("sand", 10)))
    assert not result.occurred
    assert result.message == MSG_NO_REACTION


def test_acid_base_matches_in_either_order():
    m = ReactionMatcher()
    r1 = m.check(_vessel(("hydrochloric_acid", 50), ("sodium_hydroxide", 50)))
    r2 = m.check(_vessel(("sodium_hydroxide", 50), ("hydrochloric_acid", 50)))
    assert r1.rule.id == r2.rule.id == "acid_base_neutralization"
    assert r1.message.startswith("Reaction! Acid-Base Neutralization:")


def test_check_does_not_mutate():
    v = _vessel(("hydrochloric_acid", 50), ("sodium_hydroxide", 50))
    ReactionMatcher().check(v)
    assert v.has_chemical("hydrochloric_acid")


def test_react_replaces_contents_and_returns_effects():
    v = _vessel(("sulfuric_acid", 50), ("zinc", 10))
    result, effects = ReactionMatcher().react(v)
    assert result.rule.id == "acid_metal_reaction"
    assert set(effects) == {"bubbles", "heat"}
    assert v.amount_of("hydrogen_gas") == pytest.approx(30)
    assert v.amount_of("zinc_chloride") == pytest.approx(30)
    assert v.current_volume == pytest.approx(60)


def test_first_matching_pair_wins():
    # (salt, acid) is scanned before (acid, base)
    v = _vessel(("barium_chloride", 20), ("sulfuric_acid", 20), ("sodium_hydroxide", 20))
    assert ReactionMatcher().check(v).rule.id == "barium_sulfate_precipitation"

    v = _vessel(("sulfuric_acid", 20), ("sodium_hydroxide", 20), ("barium_chloride", 20))
    assert ReactionMatcher().check(v).rule.id == "acid_base_neutralization"


def test_rule_validation():
    with pytest.raises(ValueError):
        ReactionRule("bad", "Bad", ("acid", "plasma"), [], effects=())
    with pytest.raises(ValueError):
        ReactionRule("bad", "Bad", ("acid", "base"), [], effects=("sparkles",))


def test_unknown_product_rejected(tmp_path):
    path = tmp_path / "reactions.json"
    path.write_text('{"reactions": [{"id": "x", "name": "X", "reactants": ["acid", "base"], '
                    '"products": ["unobtainium"], "effects": []}]}', encoding="utf-8")
    with pytest.raises(ValueError):
        load_reactions(path)
