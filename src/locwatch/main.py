"""Console script targets declared in pyproject.toml."""

import sys


def main_cli() -> None:
    """Run the ``locwatch`` command group."""
    from .cli.main import cli

    cli()


def main_api() -> None:
    """Serve the HTTP trigger API until interrupted."""
    from .api.app import main

    try:
        main()
    except KeyboardInterrupt:
        sys.stderr.write("locwatch API stopped\n")
        sys.exit(0)


if __name__ == "__main__":
    main_cli()
