import logging
from typing import Optional

import typer

from hostforge.commands import detect, provision
from hostforge.config import Config
from hostforge.logging import setup_logging

app = typer.Typer(help="hostforge - provision remote hosts into TLS-secured container engine hosts.")

# Add all command groups
app.add_typer(provision.app, name="provision", help="Provision hosts")
app.command("detect")(detect.detect_host)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Rotating log file ('' to disable)"),
):
    """HostForge - Container Engine Host Provisioning CLI."""
    try:
        Config.validate()
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    setup_logging(debug, log_file)
    if debug:
        logging.debug("Debug mode enabled")


if __name__ == "__main__":
    app()
