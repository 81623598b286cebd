#!/usr/bin/env python3
"""
Code Review Bot - Main Entry Point

Scans the changed files of a pull request against coding-standard rules,
surfaces the findings developers have found useful, and learns from
their feedback.

Usage:
    review-bot review --repo owner/repo --pr-number 123
    review-bot feedback --rule-id magic-numbers --outcome rejected
    review-bot insights
    review-bot batch --dataset history.json
"""

import argparse
import asyncio
import logging
import sys

from .config import BatchConfig, LearningConfig, ReviewConfig
from .errors import ReviewBotError
from .models import FindingRef
from .orchestrator import ReviewService
from .tools import (
    ChangeSource,
    GitHubChangeSource,
    JsonFileStore,
    StaticChangeSource,
    load_replay_dataset,
)
from .utils import format_insights_report, format_performance_report, setup_logging, get_logger


def _service(args, change_source: ChangeSource, config: ReviewConfig = None, batch_config: BatchConfig = None) -> ReviewService:
    config = config or ReviewConfig.from_env()
    if args.data_dir:
        config.data_dir = args.data_dir
    return ReviewService(
        change_source,
        JsonFileStore(config.data_dir),
        config=config,
        learning_config=LearningConfig.from_env(),
        batch_config=batch_config or BatchConfig.from_env(),
    )


def cmd_init(args):
    """Handle 'init' subcommand."""
    from pathlib import Path
    from .cli import init_repository

    target = Path(args.path) if args.path else Path.cwd()
    success = init_repository(target, data_dir=args.data_dir or ".review-bot")
    sys.exit(0 if success else 1)


def cmd_review(args):
    """Handle 'review' subcommand."""
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    logger = get_logger()

    # Build config
    config = ReviewConfig.from_env()

    if args.repo:
        config.repo = args.repo
    if args.budget is not None:
        config.comment_budget = args.budget
    config.post_comments = config.post_comments and not args.no_comments
    config.post_summary = config.post_summary and not args.no_summary
    if args.all_lines:
        config.analyze_only_changed = False

    # Validate
    if not config.repo:
        logger.error("Repository required. Use --repo or set GITHUB_REPOSITORY env var")
        sys.exit(1)
    if not args.pr_number:
        logger.error("PR number required. Use --pr-number")
        sys.exit(1)

    try:
        source = GitHubChangeSource(
            token=config.github_token,
            include_extensions=config.include_extensions,
            max_file_size_kb=config.max_file_size_kb,
        )
    except ReviewBotError as e:
        logger.error(str(e))
        sys.exit(1)

    async def run():
        async with _service(args, source, config) as service:
            return await service.analyze_submission(f"{config.repo}#{args.pr_number}")

    try:
        outcome = asyncio.run(run())
    except Exception as e:
        logger.exception(f"Review failed: {e}")
        sys.exit(1)

    if not outcome.success:
        logger.error(f"Review failed ({outcome.error_kind.value}): {outcome.error_message}")
        sys.exit(1)
    logger.info(f"Review complete: {outcome.issues_found} issues, {outcome.comments_posted} comments posted")
    sys.exit(0)


def cmd_feedback(args):
    """Handle 'feedback' subcommand."""
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    logger = get_logger()

    ref = FindingRef(
        subject_id=args.subject or "",
        rule_id=args.rule_id,
        file_path=args.file or "",
        line_number=args.line or 0,
    )

    async def run():
        async with _service(args, StaticChangeSource()) as service:
            return await service.submit_feedback(ref, args.outcome)

    try:
        result = asyncio.run(run())
    except Exception as e:
        logger.exception(f"Feedback failed: {e}")
        sys.exit(1)

    if not result.ok:
        logger.error(f"Feedback rejected ({result.error.value}): {result.message}")
        sys.exit(1)

    record = result.value
    print(
        f"{record.rule_id}: effectiveness {record.score:.0%} "
        f"(accepted {record.issues_accepted}, rejected {record.issues_rejected}, "
        f"ignored {record.issues_ignored}, found {record.issues_found})"
    )
    sys.exit(0)


def cmd_insights(args):
    """Handle 'insights' subcommand."""
    setup_logging(level=logging.DEBUG if args.debug else logging.WARNING)
    logger = get_logger()

    async def run():
        async with _service(args, StaticChangeSource()) as service:
            return service.get_insights(), service.get_performance_report()

    try:
        insights, performance = asyncio.run(run())
    except Exception as e:
        logger.exception(f"Failed to load insights: {e}")
        sys.exit(1)

    print(format_insights_report(insights))
    print()
    print(format_performance_report(performance))
    sys.exit(0)


def cmd_batch(args):
    """Handle 'batch' subcommand."""
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    logger = get_logger()

    try:
        items = load_replay_dataset(args.dataset)
    except ReviewBotError as e:
        logger.error(str(e))
        sys.exit(1)

    batch_config = BatchConfig.from_env()
    if args.max_concurrency:
        batch_config.max_concurrency = args.max_concurrency
    if args.requests_per_second is not None:
        batch_config.requests_per_second = args.requests_per_second

    config = ReviewConfig.from_env()
    if all(item.files is not None for item in items):
        source: ChangeSource = StaticChangeSource.from_items(items)
    else:
        try:
            source = GitHubChangeSource(
                token=config.github_token,
                include_extensions=config.include_extensions,
                max_file_size_kb=config.max_file_size_kb,
            )
        except ReviewBotError as e:
            logger.error(f"Dataset references live submissions: {e}")
            sys.exit(1)

    async def run():
        async with _service(args, source, config, batch_config) as service:
            started = await service.start_batch(items, resume_from=args.resume_from)
            if not started.ok:
                return started, None
            finished = await service.wait_for_batch(started.value)
            return finished, service.get_performance_report()

    try:
        result, performance = asyncio.run(run())
    except Exception as e:
        logger.exception(f"Batch failed: {e}")
        sys.exit(1)

    if not result.ok:
        logger.error(f"Batch not started: {result.message}")
        sys.exit(1)

    job = result.value
    print("\n=== Batch Results ===")
    print(f"Job: {job.id}")
    print(f"Status: {job.status.value}")
    print(f"Processed: {job.processed}/{job.total}")
    print(f"Succeeded: {job.succeeded}")
    print(f"Failed: {job.failed}")
    for item_id, error in sorted(job.item_errors.items()):
        print(f"  - {item_id}: {error}")
    print()
    print(format_performance_report(performance))
    sys.exit(0 if job.status.value == "completed" else 1)


def _add_common(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--data-dir",
        type=str,
        help="Directory holding rules and learning data (default: .review-bot)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Adaptive code review bot"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize review-bot in a repository")
    init_parser.add_argument(
        "path",
        nargs="?",
        help="Target repository path (default: current directory)"
    )
    _add_common(init_parser)

    # review command
    review_parser = subparsers.add_parser("review", help="Review a pull request")
    review_parser.add_argument(
        "--repo",
        type=str,
        help="Repository in format owner/repo"
    )
    review_parser.add_argument(
        "--pr-number",
        type=int,
        help="Pull request number"
    )
    review_parser.add_argument(
        "--budget",
        type=int,
        help="Maximum findings surfaced (default: 50)"
    )
    review_parser.add_argument(
        "--all-lines",
        action="store_true",
        help="Scan whole files instead of only the changed lines"
    )
    review_parser.add_argument(
        "--no-comments",
        action="store_true",
        help="Don't post inline comments"
    )
    review_parser.add_argument(
        "--no-summary",
        action="store_true",
        help="Don't post summary comment"
    )
    _add_common(review_parser)

    # feedback command
    feedback_parser = subparsers.add_parser("feedback", help="Record feedback on a finding")
    feedback_parser.add_argument(
        "--rule-id",
        type=str,
        required=True,
        help="Rule the finding came from"
    )
    feedback_parser.add_argument(
        "--outcome",
        type=str,
        required=True,
        choices=["accepted", "rejected", "ignored", "true_positive", "false_positive"],
        help="Developer reaction to the finding"
    )
    feedback_parser.add_argument("--subject", type=str, help="Submission id (owner/repo#number)")
    feedback_parser.add_argument("--file", type=str, help="File the finding was on")
    feedback_parser.add_argument("--line", type=int, help="Line the finding was on")
    _add_common(feedback_parser)

    # insights command
    insights_parser = subparsers.add_parser("insights", help="Show learning insights")
    _add_common(insights_parser)

    # batch command
    batch_parser = subparsers.add_parser("batch", help="Replay historical submissions")
    batch_parser.add_argument(
        "--dataset",
        type=str,
        required=True,
        help="JSON file of historical submissions"
    )
    batch_parser.add_argument(
        "--resume-from",
        type=str,
        help="Skip items completed by an earlier job"
    )
    batch_parser.add_argument(
        "--max-concurrency",
        type=int,
        help="Items processed in parallel (default: CPU count)"
    )
    batch_parser.add_argument(
        "--requests-per-second",
        type=float,
        help="External call rate limit (default: 10, 0 disables)"
    )
    _add_common(batch_parser)

    args = parser.parse_args()

    # Route to subcommand
    if args.command == "init":
        cmd_init(args)
    elif args.command == "review":
        cmd_review(args)
    elif args.command == "feedback":
        cmd_feedback(args)
    elif args.command == "insights":
        cmd_insights(args)
    elif args.command == "batch":
        cmd_batch(args)
    else:
        # No subcommand - show help
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
