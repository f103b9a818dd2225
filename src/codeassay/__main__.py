from __future__ import annotations

from codeassay.cli import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
