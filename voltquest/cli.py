"""Custom Flask CLI commands."""

from __future__ import annotations

import json
import logging

import click
from flask import Flask, current_app

from .errors import GamificationError
from .services.catalog_service import seed_catalog
from .services.reward_rules import ACTION_COUNTER_MAP, BASE_REWARD_MAP
from .constants import KNOWN_ACTION_TYPES


def register_cli_commands(app: Flask) -> None:
    """Register application specific CLI commands."""

    @app.cli.command("seed-catalog")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def seed_catalog_command(path: str) -> None:
        """Upsert items, badges and quests from a JSON file."""

        logger = current_app.logger or logging.getLogger(__name__)

        try:
            with open(path, encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise click.ClickException(f"Cannot read {path}: {exc}") from exc

        if not isinstance(payload, dict):
            raise click.ClickException("Catalog file must contain a JSON object")

        try:
            counts = seed_catalog(payload)
        except GamificationError as exc:
            logger.error("[CATALOG] Seeding failed: %s", exc)
            raise click.ClickException(str(exc)) from exc

        click.echo(
            "Catalog seeded: {items} items, {badges} badges, {quests} quests".format(**counts)
        )

    @app.cli.command("reward-table")
    def reward_table_command() -> None:
        """Print the base reward and counter for every action type."""

        click.echo(f"{'action_type':<40} {'points':>6}  counter")
        for action_type in sorted(KNOWN_ACTION_TYPES):
            points = BASE_REWARD_MAP.get(action_type, 0)
            counter = ACTION_COUNTER_MAP.get(action_type) or "-"
            click.echo(f"{action_type:<40} {points:>6}  {counter}")
