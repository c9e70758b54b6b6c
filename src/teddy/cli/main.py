#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv


def _repo_root() -> Path:
    return Path.cwd().resolve()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teddy",
        description="Teddy - turn a request or a plan document into verified workspace changes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    run_p = subparsers.add_parser("run", help="Carry out an instruction in a workspace")
    run_p.add_argument("instruction", help="What to do, e.g. 'create a calculator module'")
    run_p.add_argument("--workspace", "-w", help="Workspace root (default: current directory)")
    run_p.add_argument("--context", nargs="*", default=[], help="Files attached as context")
    run_p.add_argument("--plan", help="Plan document treated as the previous assistant turn")
    run_p.add_argument("--provider", help="LLM provider (anthropic, groq, openai, ollama)")
    run_p.add_argument("--model", help="Model name for the provider")
    run_p.add_argument("--current-file", help="File reported as open in the editor")

    parse_p = subparsers.add_parser("parse", help="Show how a file is read as a plan")
    parse_p.add_argument("file", help="Plan document")
    parse_p.add_argument("--json", action="store_true", help="Output JSON")
    parse_p.add_argument("--workspace", "-w", help="Workspace whose .teddy/config.yaml applies")

    def add_llm_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--workspace", "-w", help="Workspace root (default: current directory)")
        p.add_argument("--provider", help="LLM provider (anthropic, groq, openai, ollama)")
        p.add_argument("--model", help="Model name for the provider")

    tasks_p = subparsers.add_parser("tasks", help="Turn .teddy/plan.md into a .teddy/tasks.md checklist")
    add_llm_options(tasks_p)

    implement_p = subparsers.add_parser("implement", help="Implement the next open task in .teddy/tasks.md")
    add_llm_options(implement_p)

    tdd_p = subparsers.add_parser("tdd", help="Write failing tests for a feature, then make them pass")
    tdd_p.add_argument("feature", help="Feature to build test-first")
    add_llm_options(tdd_p)
    tdd_p.add_argument("--current-file", help="File reported as open in the editor")

    help_p = subparsers.add_parser("help", help="Show help for a command")
    help_p.add_argument("subcommand", nargs="?", help="The command to get help for")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging before any pipeline module logs
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("teddy").setLevel(logging.DEBUG if args.verbose else logging.INFO)

    load_dotenv(_repo_root() / ".env")

    if args.command == "help":
        if args.subcommand:
            parser.parse_args([args.subcommand, "--help"])
        else:
            parser.print_help()
        return 0

    if args.command is None:
        parser.print_help()
        return 1

    from teddy.cli.commands import parse, run, workflow

    try:
        if args.command == "run":
            return asyncio.run(run.run(
                instruction=args.instruction,
                workspace_dir=args.workspace,
                context_files=args.context,
                plan_file=args.plan,
                provider=args.provider,
                model=args.model,
                current_file=args.current_file,
            ))
        elif args.command == "tasks":
            return asyncio.run(workflow.tasks(args.workspace, args.provider, args.model))
        elif args.command == "implement":
            return asyncio.run(workflow.implement(args.workspace, args.provider, args.model))
        elif args.command == "tdd":
            return asyncio.run(workflow.tdd(
                args.feature,
                workspace_dir=args.workspace,
                provider=args.provider,
                model=args.model,
                current_file=args.current_file,
            ))
    except KeyboardInterrupt:
        return 130

    if args.command == "parse":
        return parse.run(args.file, json_output=args.json, workspace_dir=args.workspace)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
