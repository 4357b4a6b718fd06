"""CLI entrypoint for python -m send2tg_cli."""

from send2tg_cli.app import app


def main() -> None:
    """Run the send2tg CLI."""
    app()


if __name__ == "__main__":
    main()
