"""Allow running the console via ``python -m custody_staking``."""

from .cli import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
