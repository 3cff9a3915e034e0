#!/usr/bin/env python3
"""
Workflow Runner CLI

Runs a workflow file locally through the same engine the API server uses
and prints the final run record as JSON.

Usage:
    python run_workflow.py <workflow.json|yaml> [--var key=value ...]
    python run_workflow.py flows/login.yaml --visible --keep-open
    python run_workflow.py flows/report.json --archive-dir output/runs
"""

import argparse
import asyncio
import json
import logging
import sys

import engine_config
from browser_session import SessionManager
from persistence import JSONRunArchive
from run_tracker import RunTracker
from workflow_loader import load_workflow
from workflow_models import RunStatus

logger = logging.getLogger(__name__)


def output_json(data):
    """Print JSON to stdout."""
    print(json.dumps(data, indent=2, ensure_ascii=False))


def parse_variables(pairs):
    """Turn ["a=1", "b=x"] into {"a": "1", "b": "x"}."""
    variables = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Variable must look like key=value: {pair}")
        key, value = pair.split("=", 1)
        variables[key.strip()] = value
    return variables


async def run(args):
    workflow = load_workflow(args.workflow_file)
    variables = parse_variables(args.var)

    archive = JSONRunArchive(args.archive_dir) if args.archive_dir else None
    tracker = RunTracker(
        session_manager=SessionManager(headless=args.headless),
        archive=archive,
        retention_seconds=None,
        terminate_on_finish=False,
    )

    run_id = tracker.start(workflow, variables)
    logger.info(f"Run {run_id} started")

    final = None
    logged = 0
    async for snapshot in tracker.stream(run_id):
        for entry in snapshot.logs[logged:]:
            logger.info(f"[{entry.node_id}] {entry.action}: {entry.status} - {entry.message}")
        logged = len(snapshot.logs)
        final = snapshot

    if args.keep_open:
        await asyncio.to_thread(input, "Press Enter to close the browser...")
    await tracker.shutdown()
    return final


def main():
    parser = argparse.ArgumentParser(description="Run a browser workflow")
    parser.add_argument("workflow_file", help="Workflow JSON or YAML file")
    parser.add_argument("--var", action="append", help="Initial variable, key=value (repeatable)")
    parser.add_argument("--headless", action="store_true", default=engine_config.HEADLESS)
    parser.add_argument("--visible", action="store_true", help="Run with visible browser")
    parser.add_argument("--keep-open", action="store_true", help="Keep the browser open until Enter is pressed")
    parser.add_argument("--archive-dir", default=engine_config.RUN_ARCHIVE_DIR, help="Archive the finished run here")

    args = parser.parse_args()

    if args.visible:
        args.headless = False

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        final = asyncio.run(run(args))
    except Exception as e:
        output_json({"error": str(e), "workflow": args.workflow_file})
        sys.exit(1)

    output_json(final.to_json_dict())
    if final.status is not RunStatus.COMPLETED:
        sys.exit(1)


if __name__ == "__main__":
    main()
