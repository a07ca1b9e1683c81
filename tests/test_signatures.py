import pytest

from chemlab.signatures import SignatureKey, OutcomeTable, candidate_keys, EXACT, SUPERSET


def test_parse_splits_chemicals_and_actions():
    key = SignatureKey.parse("water+salt+stir")
    assert key.chemicals == ("water", "salt")
    assert key.actions == ("stir",)
    assert key == SignatureKey.parse("salt+water+stir")
    assert key.sorted_text() == "salt+water+stir"
    with pytest.raises(ValueError):
        SignatureKey.parse(" + ")


def test_candidate_ranking():
    keys = candidate_keys(["naoh", "phenolphthalein"], ["heat", "stir"])
    assert [k.text() for k in keys] == [
        "naoh+phenolphthalein+heat+stir",
        "naoh+phenolphthalein+heat",
        "naoh+phenolphthalein+stir",
        "naoh+phenolphthalein",
    ]


def test_specific_key_beats_chemicals_only():
    table = OutcomeTable.from_mapping({
        "naoh+phenolphthalein": "pink",
        "naoh+phenolphthalein+heat": "warm pink",
    })
    key, outcome, how = table.lookup(["phenolphthalein", "naoh"], ["heat"])
    assert outcome == "warm pink"
    assert how == EXACT
    assert key.text() == "naoh+phenolphthalein+heat"


def test_superset_pass_in_table_order():
    table = OutcomeTable.from_mapping({
        "water+salt+stir": "dissolved",
        "water+salt": "sitting",
        "water": "plain",
    })
    key, outcome, how = table.lookup(["water", "salt", "sand"], [])
    assert how == SUPERSET
    assert outcome == "sitting"


def test_lookup_miss():
    table = OutcomeTable.from_mapping({"vinegar+blue-litmus": "red"})
    assert table.lookup(["vinegar"], []) is None
    assert table.lookup([], []) is None
