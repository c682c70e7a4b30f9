"""Module entrypoint for ``python -m pinenv``."""

from .cli import app


def main() -> None:
    app(prog_name="pinenv")


if __name__ == "__main__":
    main()
