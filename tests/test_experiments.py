import pytest

from chemlab.experiments import (
    get_experiment, load_experiments, experiments_by_class, total_experiments, FAMILIES,
)
from chemlab.phases import make_phase_machine


def test_catalog_loads_every_family():
    assert total_experiments() == 6
    assert {get_experiment(i).family for i in ("salt-dissolution", "physical-chemical", "neutralization", "filtration")} \
        == set(FAMILIES)
    assert [e.id for e in experiments_by_class(8)] == ["neutralization"]
    assert get_experiment("nope") is None


def test_outcome_table_is_structured():
    exp = get_experiment("salt-dissolution")
    outcome = exp.outcome_for("salt+water+stir")
    assert outcome.success
    assert exp.outcome_for("water+salt").success is False
    assert exp.chemical_name("salt") == "Common Salt"
    assert exp.total_steps == len(exp.procedure_steps)


def test_malformed_file_rejected(tmp_path):
    path = tmp_path / "experiments.json"
    path.write_text('{"experiments": [{"title": "no id"}]}', encoding="utf-8")
    with pytest.raises(ValueError):
        load_experiments(path)


def test_unknown_family_rejected():
    with pytest.raises(ValueError):
        make_phase_machine("four_phase")
