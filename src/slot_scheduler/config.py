from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv
from pydantic import ValidationError

from slot_scheduler.models import SchedulerConfig


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: str) -> None:
    # Runs where the app is imported, so the reloader's server process gets it too.
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def _parse_hours(raw: str) -> tuple[int, ...]:
    # SCHEDULER_EXCLUDED_HOURS is a comma-separated list, e.g. "12" or "12,13".
    # An empty value means no break.
    parts = [p.strip() for p in raw.split(",")]
    hours: list[int] = []
    for p in parts:
        if not p:
            continue
        try:
            hours.append(int(p))
        except ValueError as e:
            raise RuntimeError(f"Invalid SCHEDULER_EXCLUDED_HOURS value: {p!r}. Expected an hour.") from e
    return tuple(sorted(set(hours)))


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e


@dataclass(frozen=True)
class Settings:
    start_hour: int = 8
    end_hour: int = 17
    interval_minutes: int = 20
    excluded_hours: tuple[int, ...] = (12,)

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    def scheduler_config(self) -> SchedulerConfig:
        return SchedulerConfig(
            start_hour=self.start_hour,
            end_hour=self.end_hour,
            interval=self.interval_minutes,
            excluded_hours=self.excluded_hours,
        )


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    settings = Settings(
        start_hour=_int_env("SCHEDULER_START_HOUR", "8"),
        end_hour=_int_env("SCHEDULER_END_HOUR", "17"),
        interval_minutes=_int_env("SCHEDULER_INTERVAL_MINUTES", "20"),
        excluded_hours=_parse_hours(os.getenv("SCHEDULER_EXCLUDED_HOURS", "12")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_int_env("PORT", "8000"),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )

    # Fail at startup rather than on the first generated grid.
    try:
        settings.scheduler_config()
    except ValidationError as e:
        raise RuntimeError(f"Invalid scheduler hours: {e}") from e

    return settings
