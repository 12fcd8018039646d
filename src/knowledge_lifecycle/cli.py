"""CLI commands for the knowledge lifecycle engine."""

import asyncio
import json
import logging
import re
import sys
from typing import Any

import click

from knowledge_lifecycle.config import settings
from knowledge_lifecycle.models import ResponseSource


class SecretRedactingFilter(logging.Filter):
    """Filter to redact sensitive information from logs."""

    # Patterns for common secrets
    SECRET_PATTERNS = [
        (re.compile(r"(api[_-]?key[\s:=]+)[\w-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(token[\s:=]+)[\w-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(password[\s:=]+)\S+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(secret[\s:=]+)\S+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(bearer\s+)[\w-]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(redis://[^:/@\s]*:)[^@\s]+@", re.IGNORECASE), r"\1[REDACTED]@"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from log messages."""
        if isinstance(record.msg, str):
            for pattern, replacement in self.SECRET_PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)
        return True


# Configure logging with secret redaction
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger().addFilter(SecretRedactingFilter())
logger = logging.getLogger(__name__)


def _echo_report(title: str, report: dict[str, Any]) -> None:
    click.echo(f"\n{title}:")
    for key, value in report.items():
        if isinstance(value, dict):
            click.echo(f"  {key}:")
            for sub_key, sub_value in value.items():
                click.echo(f"    {sub_key}: {sub_value}")
        else:
            click.echo(f"  {key}: {value}")


async def _create_service():
    from knowledge_lifecycle.db.database import init_db
    from knowledge_lifecycle.service import KnowledgeLifecycleService

    await init_db()
    return await KnowledgeLifecycleService.create_default()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """Knowledge Lifecycle CLI."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
def init_database() -> None:
    """Initialize the database schema."""
    asyncio.run(_init_database())


async def _init_database() -> None:
    """Async implementation of init-database command."""
    from knowledge_lifecycle.db.database import init_db

    await init_db()
    click.echo("Database initialized successfully!")


@cli.command()
@click.option(
    "--mode",
    "-m",
    type=click.Choice(["full", "pull-only", "push-only", "cache-sweep-only"]),
    default="full",
    show_default=True,
    help="Which sync steps to run",
)
def sync(mode: str) -> None:
    """Synchronize the similarity and structured stores."""
    asyncio.run(_sync(mode))


async def _sync(mode: str) -> None:
    """Async implementation of sync command."""
    service = await _create_service()
    try:
        report = await service.run_full_sync(mode)
        _echo_report("Sync complete", report.to_dict())
        if report.unavailable_stores:
            sys.exit(1)
    finally:
        await service.stop()


@cli.command()
def learn() -> None:
    """Process one batch of the learning queue."""
    asyncio.run(_learn())


async def _learn() -> None:
    """Async implementation of learn command."""
    service = await _create_service()
    try:
        await service.queue.requeue_processing()
        report = await service.run_learning_pass()
        _echo_report("Learning pass complete", report.to_dict())
    finally:
        await service.stop()


@cli.command()
def decay() -> None:
    """Re-score every item for elapsed time and archive expired ones."""
    asyncio.run(_decay())


async def _decay() -> None:
    """Async implementation of decay command."""
    service = await _create_service()
    try:
        report = await service.run_decay_pass()
        _echo_report("Decay pass complete", report.to_dict())
    finally:
        await service.stop()


@cli.command()
def stats() -> None:
    """Show store, queue and sync statistics."""
    asyncio.run(_stats())


async def _stats() -> None:
    """Async implementation of stats command."""
    service = await _create_service()
    try:
        click.echo(json.dumps(await service.get_stats(), indent=2, default=str))
    finally:
        await service.stop()


@cli.command()
@click.option("--question", "-q", required=True, help="User question")
@click.option("--answer", "-a", required=True, help="Answer that was given")
@click.option(
    "--source",
    "-s",
    type=click.Choice([source.value for source in ResponseSource]),
    default=ResponseSource.LANGUAGE_MODEL.value,
    show_default=True,
)
@click.option("--confidence", "-c", type=float, default=0.0, help="Answer confidence (0-1)")
@click.option("--matched-id", help="Knowledge id the answer came from")
@click.option("--rating", "-r", type=click.IntRange(1, 5), help="User rating (1-5)")
def enqueue(
    question: str,
    answer: str,
    source: str,
    confidence: float,
    matched_id: str | None,
    rating: int | None,
) -> None:
    """Add a question/answer pair to the learning queue."""
    asyncio.run(_enqueue(question, answer, source, confidence, matched_id, rating))


async def _enqueue(
    question: str,
    answer: str,
    source: str,
    confidence: float,
    matched_id: str | None,
    rating: int | None,
) -> None:
    """Async implementation of enqueue command."""
    from knowledge_lifecycle.exceptions import CandidateValidationError

    service = await _create_service()
    try:
        entry_id = await service.enqueue_candidate(
            {
                "user_message": question,
                "bot_response": answer,
                "response_source": source,
                "confidence_score": confidence,
                "matched_knowledge_id": matched_id,
                "user_feedback": rating,
            }
        )
        click.echo(f"Queued learning candidate #{entry_id}")
    except CandidateValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        await service.stop()


@cli.command()
@click.option("--question", "-q", required=True, help="Question to evaluate")
@click.option("--answer", "-a", required=True, help="Answer to evaluate")
def decide(question: str, answer: str) -> None:
    """Show the storage decision for a question/answer pair without storing it."""
    asyncio.run(_decide(question, answer))


async def _decide(question: str, answer: str) -> None:
    """Async implementation of decide command."""
    from knowledge_lifecycle.lifecycle.decision import DecisionEngine
    from knowledge_lifecycle.service import build_feature_classifier

    engine = DecisionEngine(await build_feature_classifier())
    decision = await engine.decide(question, answer)

    click.echo(f"\nStore: {decision.store}")
    click.echo(f"  Tier: {decision.tier.value}")
    click.echo(f"  Score: {decision.score:.2f} (initial {decision.initial_score:.2f})")
    click.echo(f"  Expected lifespan: {decision.expected_lifespan_days} days")
    click.echo(f"  Fallback used: {decision.used_fallback}")
    click.echo(f"  Reasoning: {decision.reasoning}")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", "-p", type=int, default=8000, help="Port to run on")
def serve(host: str, port: int) -> None:
    """Run the API server with the periodic jobs."""
    import uvicorn

    click.echo(f"Starting {settings.APP_NAME} on {host}:{port}")
    uvicorn.run("knowledge_lifecycle.main:app", host=host, port=port)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
