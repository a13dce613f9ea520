"""Typer CLI for running and inspecting the answer proxy."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

import typer

from .config_loader import list_env_overrides, load_file_config, load_proxy_config
from .logging_utils import configure_logging

app = typer.Typer(help="Lawdata streaming answer proxy")

CONFIG_PRECEDENCE = [
    "Environment variables (ANSWER_PROXY_*)",
    "Config file (configs/answer_proxy.toml)",
    "Built-in defaults",
]


@app.command("serve")
def cmd_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Override bind host"),
    port: Optional[int] = typer.Option(None, "--port", help="Override bind port"),
):
    """Run the proxy under uvicorn."""
    import uvicorn

    cfg = load_proxy_config()
    log_path = configure_logging(cfg)
    typer.echo(f"Logging to {log_path}")
    if not cfg.token_validation_enabled:
        typer.echo("Token validation disabled; only the origin check applies.")
    uvicorn.run(
        "lawdata.answer_proxy.app:app",
        host=host or cfg.host,
        port=port or cfg.port,
    )


@app.command("show-config")
def cmd_show_config():
    """Print the effective configuration and where each layer comes from."""
    runtime = asdict(load_proxy_config())
    config_path = runtime.pop("config_file_path", None)
    typer.echo(
        json.dumps(
            {
                "runtime": runtime,
                "file": load_file_config(),
                "config_file_path": config_path,
                "env_overrides": list_env_overrides(),
                "precedence": CONFIG_PRECEDENCE,
            },
            indent=2,
            ensure_ascii=False,
        )
    )


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
