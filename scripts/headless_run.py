"""Headless run of every scripted experiment, with the event log exported as JSONL.

Usage: python scripts/headless_run.py
"""
import os
import sys
import json

# Ensure project root is on sys.path when running from scripts/
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from chemlab.lab_manager import LabManager
from chemlab.walkthroughs import WALKTHROUGHS, run_walkthrough

OUT_DIR = os.path.join("data", "exports")
os.makedirs(OUT_DIR, exist_ok=True)
out_path = os.path.join(OUT_DIR, "events.jsonl")

lab = LabManager(progress_path=None)
print(f"Starting headless run: events -> {out_path}")
for experiment_id in WALKTHROUGHS:
    flags = run_walkthrough(lab, experiment_id)
    print(f"{experiment_id:20s} completed={flags.get('completed')} steps={flags.get('step_progress')}/{flags.get('total_steps')}")
    lab.go_to_home_screen()

with open(out_path, "w", encoding="utf-8") as fh:
    for ev in lab.bus.log:
        fh.write(json.dumps(ev, ensure_ascii=False) + "\n")

print("Headless run complete, events =", len(lab.bus.log), "completed =", lab.completed_experiments())
