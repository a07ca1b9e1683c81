# chemlab/__init__.py
__all__ = [
    "Chemical", "Vessel", "ReactionMatcher", "ReactionRule", "SignatureKey", "OutcomeTable",
    "ExperimentDefinition", "ExperimentEngine", "LabManager", "Scheduler", "EventBus",
    "HeatingSystem", "FiltrationBuffer", "JsonCompletionStore",
]

from .chemicals import Chemical
from .vessel import Vessel
from .reactions import ReactionMatcher, ReactionRule
from .signatures import SignatureKey, OutcomeTable
from .experiments import ExperimentDefinition
from .experiment_engine import ExperimentEngine
from .lab_manager import LabManager
from .scheduler import Scheduler
from .events import EventBus
from .heating import HeatingSystem
from .filtration import FiltrationBuffer
from .progress import JsonCompletionStore
