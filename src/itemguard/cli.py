# src/itemguard/cli.py
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer

from itemguard.config import load_config
from itemguard.utils.logging import setup_logging
from itemguard.validate.schema import Difficulty

app = typer.Typer(
    add_completion=False, help="itemguard: multi-judge validation and auto-repair of exercise items."
)
logger = logging.getLogger(__name__)

EXIT_PROBLEMS = 2


# ============================================================================
# Validate subcommand
# ============================================================================
@app.command()
def validate(
    items: Path = typer.Option(
        ..., "--items", "-i", exists=True, readable=True, help="JSON array or JSONL of items."
    ),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, readable=True),
    subject: str = typer.Option(..., "--subject", help="math | algebra | geometry | russian | ..."),
    grade: int = typer.Option(..., "--grade", min=1, max=11),
    topic: str = typer.Option(..., "--topic"),
    difficulty: Difficulty = typer.Option(Difficulty.MEDIUM, "--difficulty", case_sensitive=False),
    autofix: bool = typer.Option(True, "--autofix/--no-autofix", help="Repair flagged items."),
    out: Path | None = typer.Option(None, "--out", help="Output directory (default: paths.output_dir)."),
    log_level: str = typer.Option("INFO", "--log-level"),
) -> None:
    """Validate a batch of generated items; exit code 2 when problem items were found."""
    setup_logging(log_level)
    cfg = load_config(config)
    if config is not None:
        logger.info("Loaded config: %s", config)

    from itemguard.validate.run import run_validation
    from itemguard.validate.schema import ValidationContext, ValidationOptions

    ctx = ValidationContext(subject=subject, grade=grade, topic=topic, difficulty=difficulty)
    report = run_validation(
        cfg,
        items,
        ctx,
        ValidationOptions(auto_fix=autofix),
        output_dir=out,
    )
    logger.info(
        "Validation complete. valid=%s problems=%s fixed=%d. Outputs under: %s",
        report.valid,
        report.problem_items,
        report.fixed_count,
        out or cfg.paths.output_dir,
    )
    if not report.valid:
        raise typer.Exit(code=EXIT_PROBLEMS)


# ============================================================================
# Smoke subcommand
# ============================================================================
@app.command()
def smoke(
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, readable=True),
    log_level: str = typer.Option("INFO", "--log-level"),
) -> None:
    """One tiny oracle call to check credentials and connectivity."""
    setup_logging(log_level)
    cfg = load_config(config)

    from itemguard.oracle import smoke_check

    try:
        reply = asyncio.run(smoke_check(cfg.oracle))
    except Exception as e:
        typer.echo(f"Result: FAIL ({type(e).__name__}: {e})")
        raise typer.Exit(code=1)

    typer.echo(f"Model : {reply.model}")
    typer.echo(f"Output: {reply.content}")
    typer.echo("Result: PASS")


if __name__ == "__main__":
    app()
