"""Run a mission: one or more natural-language goals against a live browser"""
import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

from agent import MissionAgent
from config import load_config
from exceptions import TestronautError
from mission_types import MissionGoal


logging.basicConfig(
    level=logging.INFO,
    format='[%(levelname)s] %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a Testronaut mission")
    parser.add_argument(
        "--goal",
        type=str,
        action="append",
        required=True,
        help="Goal for the agent to accomplish (repeat for multi-goal missions)"
    )
    parser.add_argument(
        "--mission",
        type=str,
        default="adhoc",
        help="Mission name used in logs and results"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file (JSON or YAML)"
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        default=None,
        help="Run browser in headful mode (show GUI)"
    )
    parser.add_argument(
        "--turns",
        type=int,
        default=None,
        help="Turn budget per goal"
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model name override"
    )
    parser.add_argument(
        "--retry-limit",
        type=int,
        default=None,
        help="Maximum HTTP 429 retries per turn"
    )
    parser.add_argument(
        "--strict-limits",
        action="store_true",
        default=None,
        help="Fail instead of clamping an out-of-range turn budget"
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write mission results as JSON to this path"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Enable debug logging"
    )
    return parser


def write_results(path: Path, results) -> None:
    payload = [
        {
            "mission": r.mission_name,
            "goal": r.goal.label or r.goal.goal,
            "status": r.status,
            "final_message": r.final_message,
            "duration_seconds": r.duration_seconds,
            "steps": [s.to_dict() for s in r.steps],
            "ground_control": r.ground_control,
        }
        for r in results
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info(f"Results written to {path}")


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    goals = [MissionGoal(goal=g, label=f"goal-{i}") for i, g in enumerate(args.goal, start=1)]

    try:
        config = load_config(
            Path(args.config) if args.config else None,
            cli_overrides={
                "turns": args.turns,
                "model": args.model,
                "retry_limit": args.retry_limit,
                "headful": args.headful,
                "strict_limits": args.strict_limits,
                "verbose": args.verbose,
            },
        )
        if config.verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        agent = MissionAgent(config=config, logger=logger)
        results = await agent.run_goals(goals, args.mission)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except TestronautError as e:
        logger.error(f"Error: {e}", exc_info=True)
        return 1

    for r in results:
        logger.info(f"{r.mission_name} / {r.goal.label}: {r.status} ({r.step_count} steps, {r.duration_seconds:.1f}s)")
    if args.output:
        write_results(Path(args.output), results)

    passed = len(results) == len(goals) and all(r.success for r in results)
    return 0 if passed else 1


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
