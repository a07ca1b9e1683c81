import pytest

from chemlab.chemicals import load_chemicals
from chemlab.experiments import load_experiments
from chemlab.reactions import load_reactions
from chemlab.lab_manager import LabManager


@pytest.fixture(autouse=True)
def fresh_data():
    # registries are module globals; reload so one test cannot leak into another
    load_chemicals()
    load_reactions()
    load_experiments()


@pytest.fixture
def lab():
    return LabManager(progress_path=None)
