"""
Conduit Command Line Interface

Runs or validates a JSON workflow definition. Only engine-internal step
types (condition, data-transform, notification, http-request) are
available from the command line.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from conduit.core.config import ConduitConfig
from conduit.core.logging import setup_logging
from conduit.exceptions import ConduitError
from conduit.workflow.engine import WorkflowEngine
from conduit.workflow.types import ExecutionStatus, WorkflowDefinition


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="conduit",
        description="Conduit - workflow execution engine CLI",
    )
    parser.add_argument("--config", type=Path, help="JSON config file")
    parser.add_argument("--log-level", default=None, help="Log level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run a workflow definition")
    run_parser.add_argument("workflow", type=Path, help="Workflow JSON file")
    run_parser.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Initial variable (value parsed as JSON when possible)",
    )
    run_parser.add_argument("--strict", action="store_true", help="Topological ordering")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a workflow definition")
    validate_parser.add_argument("workflow", type=Path, help="Workflow JSON file")
    validate_parser.add_argument("--strict", action="store_true", help="Reject cycles")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config = ConduitConfig.from_file(args.config) if args.config else ConduitConfig()
    if args.strict:
        config.engine.strict_ordering = True

    setup_logging(
        log_level=args.log_level or config.logging.level.value,
        log_format=config.logging.format,
    )

    try:
        definition = load_definition(args.workflow)
    except (OSError, ValueError) as e:
        print(f"Error: cannot load {args.workflow}: {e}", file=sys.stderr)
        return 2

    if args.command == "validate":
        return cmd_validate(definition, config)

    try:
        variables = parse_variables(args.var)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    return asyncio.run(cmd_run(definition, variables, config))


def load_definition(path: Path) -> WorkflowDefinition:
    """Load a workflow definition from a JSON file."""
    with open(path) as f:
        return WorkflowDefinition.from_dict(json.load(f))


def parse_variables(pairs: List[str]) -> Dict[str, Any]:
    """Parse KEY=VALUE pairs."""
    variables: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid variable '{pair}', expected KEY=VALUE")
        try:
            variables[key] = json.loads(raw)
        except json.JSONDecodeError:
            variables[key] = raw
    return variables


def cmd_validate(definition: WorkflowDefinition, config: ConduitConfig) -> int:
    """Validate a workflow definition."""
    engine = WorkflowEngine(config=config)
    errors = definition.validate(strict=config.engine.strict_ordering)

    for step in definition.steps:
        if not engine.dispatcher.supports(step.type):
            errors.append(f"Step {step.id}: step type {step.type.value} is not available")
            continue
        for problem in engine.dispatcher.validate_config(step.type, step.config):
            errors.append(f"Step {step.id}: {problem}")

    if errors:
        for error in errors:
            print(f"- {error}")
        return 1

    print(f"Workflow {definition.id} is valid ({len(definition.steps)} steps)")
    return 0


async def cmd_run(
    definition: WorkflowDefinition,
    variables: Dict[str, Any],
    config: ConduitConfig,
) -> int:
    """Register and run a workflow, printing the execution record."""
    engine = WorkflowEngine(config=config)
    await engine.initialize()

    try:
        await engine.register(definition)
        execution = await engine.execute(definition.id, variables)
    except ConduitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        await engine.shutdown()

    print(json.dumps(execution.to_dict(), indent=2, default=str))

    if execution.status in (ExecutionStatus.COMPLETED, ExecutionStatus.PAUSED):
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
