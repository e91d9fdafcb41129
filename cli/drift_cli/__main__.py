"""Entry point for `python -m drift_cli` and the `docdrift` console script."""

from __future__ import annotations

from drift_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
