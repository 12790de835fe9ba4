# The MIT License (MIT)
# Copyright © 2023 Yuma Rao
# Copyright © 2023 Opentensor Foundation

# Permission is hereby granted, free of charge, to any person obtaining a copy of this software and associated
# documentation files (the “Software”), to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so, subject to the following conditions:

# The above copyright notice and this permission notice shall be included in all copies or substantial portions of
# the Software.

# THE SOFTWARE IS PROVIDED “AS IS”, WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO
# THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION
# OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
# DEALINGS IN THE SOFTWARE.

"""Command line and environment configuration for the MarsGuard service.

Options use dotted names (``--server.port``). Environment variables of the
form ``MARSGUARD_<SECTION>__<KEY>`` take precedence over CLI values.
"""

from __future__ import annotations

import argparse
import os
from typing import Any, Mapping

import bittensor as bt
from pydantic import BaseModel, Field

from marsguard.attestation.retry import RetryPolicy
from marsguard.shared.logging import setup_events_logger

ENV_PREFIX = "MARSGUARD_"
_TRUE = ("1", "true", "yes", "on")


class ServiceSettings(BaseModel):
    """Resolved settings for one service process."""

    server_host: str = "0.0.0.0"
    server_port: int = Field(default=8300, ge=0, le=65535)

    registry_backend: str = Field(default="filesystem", pattern="^(filesystem|memory)$")
    registry_data_dir: str = "~/.marsguard/data"

    board_path: str = ""
    channel_key_hex: str = ""

    telemetry_url: str = ""
    telemetry_poll_interval: float = Field(default=60.0, gt=0)
    telemetry_stale_after: float = Field(default=30.0, ge=0)

    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_base: float = Field(default=0.5, ge=0)
    retry_max_backoff: float = Field(default=8.0, ge=0)

    events_retention_size: int = 2 * 1024 * 1024 * 1024  # 2 GB
    dont_save_events: bool = False
    logging_dir: str = "~/.marsguard/logs"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            backoff_base=self.retry_backoff_base,
            max_backoff=self.retry_max_backoff,
        )


# (dotted option, settings field, type, default, help)
_OPTIONS: tuple[tuple[str, str, type, Any, str], ...] = (
    ("server.host", "server_host", str, "0.0.0.0", "Interface the HTTP server binds to."),
    ("server.port", "server_port", int, 8300, "Port the HTTP server listens on."),
    ("registry.backend", "registry_backend", str, "filesystem", "Registry storage: filesystem or memory."),
    ("registry.data_dir", "registry_data_dir", str, "~/.marsguard/data", "Directory for filesystem registry records."),
    ("board.path", "board_path", str, "", "JSON file for message board persistence (empty keeps it in memory)."),
    ("channel.key_hex", "channel_key_hex", str, "", "Hex AES-256 key for the validator channel (empty generates one)."),
    ("telemetry.url", "telemetry_url", str, "", "Validators endpoint to poll (empty serves sample data)."),
    ("telemetry.poll_interval", "telemetry_poll_interval", float, 60.0, "Seconds between telemetry polls."),
    ("telemetry.stale_after", "telemetry_stale_after", float, 30.0, "Seconds before cached telemetry is refetched on read."),
    ("retry.max_attempts", "retry_max_attempts", int, 3, "Registry call attempts before giving up."),
    ("retry.backoff_base", "retry_backoff_base", float, 0.5, "Initial retry backoff in seconds."),
    ("retry.max_backoff", "retry_max_backoff", float, 8.0, "Upper bound for a single retry backoff."),
    ("neuron.events_retention_size", "events_retention_size", int, 2 * 1024 * 1024 * 1024, "Events retention size."),
)


def _env_name(option: str) -> str:
    section, key = option.split(".", 1)
    return f"{ENV_PREFIX}{section.upper()}__{key.upper()}"


def add_args(parser: argparse.ArgumentParser) -> None:
    """Adds service arguments to the parser."""
    for option, _, typ, default, help_text in _OPTIONS:
        parser.add_argument(f"--{option}", type=typ, default=default, help=help_text)

    parser.add_argument(
        "--neuron.dont_save_events",
        action="store_true",
        help="If set, we dont save events to a log file.",
        default=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MarsGuard validator risk service")
    bt.logging.add_args(parser)
    add_args(parser)
    parser.set_defaults(**{"logging.logging_dir": "~/.marsguard/logs"})
    return parser


def resolve_settings(
    args: argparse.Namespace,
    environ: Mapping[str, str] | None = None,
) -> ServiceSettings:
    """Merge parsed CLI args with environment overrides (env wins)."""
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    for option, field, typ, default, _ in _OPTIONS:
        name = _env_name(option)
        raw = env.get(name)
        if raw in (None, ""):
            values[field] = getattr(args, option, default)
            continue
        try:
            values[field] = typ(raw)
        except ValueError as e:
            raise ValueError(f"{name}={raw!r} is not a valid {typ.__name__}") from e

    raw = env.get(_env_name("neuron.dont_save_events"))
    if raw:
        values["dont_save_events"] = raw.strip().lower() in _TRUE
    else:
        values["dont_save_events"] = bool(getattr(args, "neuron.dont_save_events", False))

    logging_dir = env.get(_env_name("logging.logging_dir")) or getattr(args, "logging.logging_dir", None)
    if logging_dir:
        values["logging_dir"] = logging_dir

    return ServiceSettings(**values)


def check_config(settings: ServiceSettings) -> str:
    """Create the service log directory and attach the events logger.

    Returns the resolved log directory.
    """
    full_path = os.path.expanduser(os.path.join(settings.logging_dir, "marsguard"))
    os.makedirs(full_path, exist_ok=True)
    bt.logging.info({"config": {"full_path": full_path}})

    if not settings.dont_save_events:
        events_logger = setup_events_logger(full_path, settings.events_retention_size)
        bt.logging.register_primary_logger(events_logger.name)
    return full_path


def config(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> ServiceSettings:
    """Parse ``argv`` and return resolved settings."""
    parser = build_parser()
    args = parser.parse_args(argv)
    return resolve_settings(args, environ)


__all__ = [
    "ServiceSettings",
    "add_args",
    "build_parser",
    "check_config",
    "config",
    "resolve_settings",
]
