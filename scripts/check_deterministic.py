"""Play every walkthrough on two fresh labs and compare the event logs."""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from chemlab.lab_manager import LabManager
from chemlab.walkthroughs import WALKTHROUGHS, run_walkthrough


def play():
    lab = LabManager(progress_path=None)
    for experiment_id in WALKTHROUGHS:
        run_walkthrough(lab, experiment_id)
        lab.go_to_home_screen()
    return list(lab.bus.log)


first, second = play(), play()
if first == second:
    print(f"Deterministic: {len(first)} identical events")
else:
    for i, (a, b) in enumerate(zip(first, second)):
        if a != b:
            print(f"First difference at event {i}:\n  {a}\n  {b}")
            break
    else:
        print(f"Logs differ in length: {len(first)} vs {len(second)}")
    sys.exit(1)
