"""Entry point for `python -m init_pipeline` and the `init-pipeline` CLI script."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from init_pipeline.errors import PipelineError, ValidationFailedError
from init_pipeline.models import Stage
from init_pipeline.pipeline import CommandResult, InitPipeline
from init_pipeline.settings import PROVIDER_CHOICES, RuntimeSettings
from init_pipeline.stage_c import ApplyOptions


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo-root", type=Path, default=Path("."), help="Repository root (default: cwd)")
    common.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    common.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    common.add_argument("--docs-root", default=None, help="Stage A docs directory (default: init/_work/stage-a-docs)")
    common.add_argument(
        "--blueprint", default=None, help="Blueprint JSON path (default: init/_work/project-blueprint.json)"
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="init-pipeline",
        description="Gated project initialization: requirements docs, blueprint, scaffold",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("start", parents=[common], help="Create the init state file")
    language = commands.add_parser("set-language", parents=[common], help="Set the working language and create templates")
    language.add_argument("--language", required=True, help='Free-form language name, e.g. "English"')
    commands.add_parser("status", parents=[common], help="Show stage progress and next steps")
    commands.add_parser("advance", parents=[common], help="Print the checkpoint for the current stage")

    docs = commands.add_parser("check-docs", parents=[common], help="Validate the Stage A documents")
    docs.add_argument("--strict", action="store_true", help="Treat warnings as failures")

    commands.add_parser("validate", parents=[common], help="Validate the blueprint")

    packs = commands.add_parser("suggest-packs", parents=[common], help="Recommend skill packs from the blueprint")
    packs.add_argument("--write", action="store_true", help="Safe-add missing recommended packs to the blueprint")

    scaffold = commands.add_parser("scaffold", parents=[common], help="Plan or apply the minimal scaffold")
    scaffold.add_argument("--apply", action="store_true", help="Create directories and files (default: dry-run)")

    apply = commands.add_parser("apply", parents=[common], help="Run Stage C: scaffold, manifest, wrapper sync")
    apply.add_argument("--providers", default=None, choices=sorted(PROVIDER_CHOICES), help="Wrapper-sync providers")
    apply.add_argument("--require-stage-a", action="store_true", help="Refuse unless the Stage A docs pass")
    apply.add_argument(
        "--require-stage-a-strict", action="store_true", help="Refuse unless the Stage A docs pass with no warnings"
    )
    apply.add_argument("--skip-agent-builder", action="store_true", help="Remove the agent builder skills before sync")
    apply.add_argument("--i-understand", action="store_true", help="Acknowledge destructive options")

    approve = commands.add_parser("approve", parents=[common], help="Record user approval and advance a stage")
    approve.add_argument("--stage", required=True, choices=["A", "B", "C"], help="Stage being approved")

    commands.add_parser("review-skill-retention", parents=[common], help="Record the skill retention review")

    stop = commands.add_parser("stop", parents=[common], help="Emergency stop: halt mutating commands")
    stop.add_argument("--reason", default="", help="Why the pipeline is halted")
    commands.add_parser("resume", parents=[common], help="Lift an emergency stop")

    cleanup = commands.add_parser("cleanup", parents=[common], help="Archive artifacts and remove the bootstrap kit")
    cleanup.add_argument("--apply", action="store_true", help="Perform the cleanup (default: dry-run)")
    cleanup.add_argument("--archive", action="store_true", help="Archive both the docs and the blueprint")
    cleanup.add_argument("--archive-docs", action="store_true", help="Archive the Stage A docs")
    cleanup.add_argument("--archive-blueprint", action="store_true", help="Archive the blueprint")
    cleanup.add_argument("--archive-dir", default=None, help="Archive destination (default: docs/project/overview)")
    cleanup.add_argument("--i-understand", action="store_true", help="Acknowledge the deletion")

    migrate = commands.add_parser("migrate-workdir", parents=[common], help="Move legacy artifacts into the work dir")
    migrate.add_argument("--apply", action="store_true", help="Perform the moves (default: dry-run)")

    prune = commands.add_parser("prune-agent-builder", parents=[common], help="Remove the agent builder skills")
    prune.add_argument("--apply", action="store_true", help="Perform the removal (default: dry-run)")
    prune.add_argument("--no-sync", action="store_true", help="Skip the wrapper sync after pruning")
    prune.add_argument("--providers", default=None, choices=sorted(PROVIDER_CHOICES), help="Wrapper-sync providers")
    prune.add_argument("--i-understand", action="store_true", help="Acknowledge the deletion")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def run_command(pipeline: InitPipeline, args: argparse.Namespace) -> CommandResult:
    command = args.command
    if command == "start":
        return pipeline.start()
    if command == "set-language":
        return pipeline.set_language(args.language)
    if command == "status":
        return pipeline.status()
    if command == "advance":
        return pipeline.advance()
    if command == "check-docs":
        return pipeline.check_docs(strict=args.strict)
    if command == "validate":
        return pipeline.validate()
    if command == "suggest-packs":
        return pipeline.suggest_packs(write=args.write)
    if command == "scaffold":
        return pipeline.scaffold(apply=args.apply)
    if command == "apply":
        options = ApplyOptions(
            providers=args.providers or pipeline.settings.default_providers,
            require_stage_a=args.require_stage_a,
            require_stage_a_strict=args.require_stage_a_strict,
            skip_agent_builder=args.skip_agent_builder,
        )
        return pipeline.apply(options, i_understand=args.i_understand)
    if command == "approve":
        return pipeline.approve(Stage(args.stage))
    if command == "review-skill-retention":
        return pipeline.review_skill_retention()
    if command == "stop":
        return pipeline.stop(args.reason)
    if command == "resume":
        return pipeline.resume()
    if command == "cleanup":
        return pipeline.cleanup(
            apply=args.apply,
            archive_docs=args.archive or args.archive_docs,
            archive_blueprint=args.archive or args.archive_blueprint,
            archive_dir=args.archive_dir,
            i_understand=args.i_understand,
        )
    if command == "migrate-workdir":
        return pipeline.migrate_workdir(apply=args.apply)
    if command == "prune-agent-builder":
        return pipeline.prune_agent_builder(
            apply=args.apply,
            sync=not args.no_sync,
            providers=args.providers,
            i_understand=args.i_understand,
        )
    raise ValueError(f"Unknown command: {command}")


def print_result(result: CommandResult, output_format: str) -> None:
    if output_format == "json":
        print(json.dumps(result.payload, indent=2, default=str))
        return
    for line in result.lines:
        print(line)


def print_error(exc: PipelineError) -> None:
    print(f"[error] {exc}", file=sys.stderr)
    if isinstance(exc, ValidationFailedError):
        for error in exc.errors:
            print(f"- {error}", file=sys.stderr)
    if exc.hint:
        print(f"[hint] {exc.hint}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = RuntimeSettings.from_env()
    except ValueError as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    try:
        pipeline = InitPipeline(
            args.repo_root,
            settings=settings,
            docs_root=args.docs_root,
            blueprint_path=args.blueprint,
        )
        result = run_command(pipeline, args)
    except PipelineError as exc:
        print_error(exc)
        return 1

    print_result(result, args.format)
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
