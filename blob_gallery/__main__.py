"""Module entry point for the blob gallery CLI."""
from .cli import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
