#!/usr/bin/env python3
"""Gatekeeper - gated test-generation pipeline.

Usage:
    python main.py run --request request.json                 # run the pipeline
    python main.py run --request request.json --resume        # continue an interrupted run
    python main.py run --request story.txt --verbose          # free text, debug logging
    python main.py classify "generate tests for the login page"
    python main.py status --domain shop-example-com --feature checkout
    python main.py list-gates
"""

import argparse
import json
import logging
import sys

from config.defaults import DEFAULTS
from config.gates import GATES
from core.errors import InputValidationError, PipelineError
from manager.agent import PipelineManager
from manager.classifier import classify

EXIT_CODES = {"SUCCESS": 0, "PARTIAL": 0, "FAILED": 1}


def _load_request(path):
    """Read a request file: JSON when it parses as an object, free text otherwise."""
    with open(path) as f:
        text = f.read()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text
    return data if isinstance(data, dict) else text


def _print_result(result):
    print(f"\nStatus:   {result['status']}")
    print(f"Request:  {result['requestId']}")
    print(f"Time:     {result['executionTimeMs']} ms")
    if result["auditTrail"]:
        print(f"Audit:    {result['auditTrail']}")

    print("\nGates:")
    for name, summary in result["gates"].items():
        print(f"  [{summary['status']:8s}] {summary['gate']} {name:18s} score={summary['score']}")

    metrics = result["qualityMetrics"]
    if metrics:
        print("\nQuality:")
        for key in ("coverage", "locatorConfidence", "compiles", "passRate", "overallScore"):
            print(f"  {key:18s} {metrics.get(key)}")

    if result["deliverables"]:
        print("\nDeliverables:")
        for gate, paths in result["deliverables"].items():
            for path in paths:
                print(f"  {gate}: {path}")

    if result["issues"]:
        print("\nIssues:")
        for issue in result["issues"]:
            print(f"  - {issue}")


def cmd_run(args):
    """Run the pipeline for a request file."""
    manager = PipelineManager(state_dir=args.state_dir)
    try:
        raw = _load_request(args.request)
    except OSError as e:
        print(f"Cannot read request: {e}", file=sys.stderr)
        return 2

    try:
        outcome = manager.handle(raw, resume=args.resume)
    except InputValidationError as e:
        print("Request rejected:", file=sys.stderr)
        for issue in e.issues:
            print(f"  - {issue}", file=sys.stderr)
        return 2
    except PipelineError as e:
        print(f"Pipeline error: {e}", file=sys.stderr)
        return 1

    if outcome["category"] != "pipeline":
        print("Input does not look like a test-generation request.")
        print(f"Scores: {outcome['scores']}")
        return 2

    request = outcome["request"]
    print(f"Domain:   {request['domain']}")
    print(f"Feature:  {request['feature']}")
    print(f"URL:      {request['url']}")
    _print_result(outcome["result"])
    return EXIT_CODES.get(outcome["result"]["status"], 1)


def cmd_classify(args):
    category, scores = classify(args.text)
    print(f"Category: {category}")
    print(f"Scores:   {scores}")
    return 0


def cmd_status(args):
    manager = PipelineManager(state_dir=args.state_dir)
    view = manager.status(args.domain, args.feature)
    if view is None:
        print(f"No pipeline recorded for {args.domain}/{args.feature}")
        return 1
    state = view["state"]
    print(f"Request:   {state['requestId']}")
    print(f"Status:    {state['status']}")
    print(f"Phase:     {state['phase']}")
    print(f"Completed: {state['completedGates']}")
    if state["failedGate"] is not None:
        print(f"Failed:    gate {state['failedGate']}")
    for name, summary in view["gates"].items():
        print(f"  [{summary['status']:8s}] {summary['gate']} {name:18s} score={summary['score']}")
        for issue in summary["issues"]:
            print(f"             {issue}")
    return 0


def cmd_list_gates(args):
    print("Gates:")
    for gate, spec in sorted(GATES.items()):
        requires = ", ".join(str(g) for g in spec["requires"]) or "-"
        print(f"  {gate}  {spec['name']:18s} worker={spec['worker']:18s} requires={requires}")
    print("\nGate 0 runs only when the request needs prepared data.")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Gated test-generation pipeline",
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the pipeline for a request")
    run_parser.add_argument("--request", required=True,
                            help="Request file (JSON object or free text)")
    run_parser.add_argument("--resume", action="store_true",
                            help="Continue an interrupted run for the same domain/feature")
    run_parser.add_argument("--state-dir", default=None,
                            help=f"State directory (default: {DEFAULTS['state_dir']})")
    run_parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    classify_parser = subparsers.add_parser("classify", help="Classify a free-text request")
    classify_parser.add_argument("text", help="Request text")

    status_parser = subparsers.add_parser("status", help="Show the stored state of a pipeline")
    status_parser.add_argument("--domain", required=True)
    status_parser.add_argument("--feature", required=True)
    status_parser.add_argument("--state-dir", default=None)

    subparsers.add_parser("list-gates", help="List the pipeline gates")

    args = parser.parse_args(argv)

    if getattr(args, "verbose", False):
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    commands = {
        "run": cmd_run,
        "classify": cmd_classify,
        "status": cmd_status,
        "list-gates": cmd_list_gates,
    }
    if args.command not in commands:
        parser.print_help()
        return 1
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
