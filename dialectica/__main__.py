"""Entry point for running dialectica as a module or installed script.

Usage:
    dialectica / python -m dialectica         → JSON API (uvicorn)
    dialectica <command> ... / python -m dialectica <command> ... → CLI
"""

import sys

import uvicorn


def run() -> None:
    """Entry point: no args → JSON API, else → CLI."""
    if len(sys.argv) == 1:
        from dialectica.console import setup_logging

        setup_logging()
        uvicorn.run("dialectica.gui.app:app", host="127.0.0.1", port=8000)
    else:
        from dialectica.cli import run_cli

        sys.exit(run_cli())


if __name__ == "__main__":
    run()
