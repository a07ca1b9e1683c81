import sys
import json
import logging
import argparse

from chemlab.constants import DEFAULT_TICK_SECONDS, LOGGING_LEVEL
from chemlab.experiments import all_experiments, experiments_by_class, load_experiments, total_experiments
from chemlab.lab_manager import LabManager
from chemlab.walkthroughs import WALKTHROUGHS, run_walkthrough


def list_experiments():
    load_experiments()
    print(f"[INFO] {total_experiments()} experiments")
    for level in sorted({e.class_level for e in all_experiments()}):
        print(f"Class {level}")
        for exp in experiments_by_class(level):
            print(f"  {exp.id:20s} {exp.family:12s} {exp.title}")


def run_sandbox_demo(lab: LabManager, dt: float):
    """Neutralize in beaker_1, dissolve zinc in beaker_2, report what happened."""
    lab.fill_vessel("beaker_1", "hydrochloric_acid", 100)
    lab.fill_vessel("beaker_1", "sodium_hydroxide", 100)
    lab.fill_vessel("beaker_2", "sulfuric_acid", 50)
    lab.fill_vessel("beaker_2", "zinc", 10)
    lab.run_for(0.5, dt)
    for snap in lab.vessel_snapshots():
        if snap["contents"]:
            contents = ", ".join(f"{c['chemical']}={c['amount']:.1f}" for c in snap["contents"])
            print(f"[INFO] {snap['id']}: {snap['current_volume']:.1f} ml ({contents})")


def run_cli():
    """
    Headless lab runner:
    --experiment ID | --all | --sandbox | --list, plus --progress, --export-events, --dt
    """
    parser = argparse.ArgumentParser(description="Run the chemistry lab headless.")
    parser.add_argument("--experiment", type=str, default=None, help="Play the scripted walkthrough of one experiment")
    parser.add_argument("--all", action="store_true", help="Play every scripted walkthrough")
    parser.add_argument("--sandbox", action="store_true", help="Run the sandbox reaction demo")
    parser.add_argument("--list", action="store_true", help="List the curriculum")
    parser.add_argument("--progress", type=str, default=None, help="JSON file for completed experiments (default: in memory)")
    parser.add_argument("--export-events", type=str, default=None, help="Write the event log to this JSON file")
    parser.add_argument("--dt", type=float, default=DEFAULT_TICK_SECONDS, help="Tick length in seconds")
    parser.add_argument("--log-level", type=str, default=LOGGING_LEVEL, help="DEBUG, INFO, WARNING or ERROR")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.list:
        list_experiments()
        return 0

    lab = LabManager(progress_path=args.progress)

    if args.sandbox:
        run_sandbox_demo(lab, args.dt)

    targets = list(WALKTHROUGHS) if args.all else ([args.experiment] if args.experiment else [])
    failed = []
    for experiment_id in targets:
        try:
            flags = run_walkthrough(lab, experiment_id, dt=args.dt)
        except ValueError as e:
            print(f"[ERROR] {e}")
            return 2
        status = "complete" if flags.get("completed") else "NOT complete"
        print(f"[INFO] {experiment_id}: {status} - {flags.get('observation')}")
        if not flags.get("completed"):
            failed.append(experiment_id)
        lab.go_to_home_screen()

    if args.export_events:
        with open(args.export_events, "w", encoding="utf-8") as fh:
            json.dump(list(lab.bus.log), fh, indent=2)
        print(f"[INFO] Event log saved to {args.export_events}")

    if not (args.sandbox or targets or args.export_events):
        parser.print_help()
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(run_cli())
