"""CLI entrypoint serving mock rules from a configuration file."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import typer

from .config import MockServerConfig, load_config, mount_config
from .errors import ConfigError, RulemockError
from .logging_utils import configure_logging
from .output_config import get_log_format
from .server import MockServer

app = typer.Typer(help="Run a programmable HTTP mock server from a rules file.")


def _load(config_path: Path) -> MockServerConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="CONFIG") from exc


@app.command()
def serve(
    config_path: Path = typer.Argument(..., metavar="CONFIG", help="YAML or JSON rules file."),
    host: Optional[str] = typer.Option(None, help="Bind host (overrides the config file)."),
    port: Optional[int] = typer.Option(None, min=0, max=65535, help="Bind port, 0 picks a free port."),
    no_record: bool = typer.Option(False, "--no-record", help="Do not keep a log of received requests."),
    duration: Optional[float] = typer.Option(
        None,
        min=0,
        help="Stop after this many seconds instead of waiting for Ctrl+C.",
    ),
    log_level: str = typer.Option("info", help="Log level (debug, info, warning, error)."),
    log_format: Optional[str] = typer.Option(
        None,
        help="Log format: console, plain or json. Defaults to $CONSOLE_OUTPUT_FORMAT or console.",
    ),
) -> None:
    """Serve the configured rules and verify their expectations on shutdown."""

    configure_logging(log_level, get_log_format(log_format))
    config = _load(config_path)

    overrides = {}
    if no_record:
        overrides["record_requests"] = False
    server = MockServer(config.server, **overrides)
    try:
        server.start(host=host, port=port)
    except RulemockError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc

    mount_config(server, config)
    typer.secho(f"Mock server listening on {server.uri} ({len(config.rules)} rule(s))", fg=typer.colors.GREEN)

    try:
        if duration is None:
            while True:
                time.sleep(1)
        else:
            time.sleep(duration)
    except KeyboardInterrupt:
        typer.echo("")
    finally:
        report = server.stop()

    typer.echo(f"Requests received: {len(server.requests())}")
    if report.ok:
        typer.secho(report.render(), fg=typer.colors.GREEN)
        return
    typer.secho(report.render(), fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command()
def check(
    config_path: Path = typer.Argument(..., metavar="CONFIG", help="YAML or JSON rules file."),
) -> None:
    """Validate a rules file and list the rules it defines."""

    config = _load(config_path)
    typer.echo(f"Server: {config.server.host}:{config.server.port} record_requests={config.server.record_requests}")
    for index, rule in enumerate(config.rules, start=1):
        matchers = " AND ".join(matcher.describe() for matcher in rule.match.build())
        expectation = rule.expect.build()
        label = rule.name or f"rule-{index}"
        typer.echo(
            f"  {index}. {label} [{rule.scope.value}] {matchers} -> {rule.response.status} "
            f"expect {expectation.describe()}"
        )
    typer.secho(f"{len(config.rules)} rule(s) OK", fg=typer.colors.GREEN)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
