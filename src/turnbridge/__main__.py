"""turnbridge CLI entry point."""

from turnbridge.cli import app

if __name__ == "__main__":
    app()
