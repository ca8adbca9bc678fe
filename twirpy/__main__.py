"""Allow `python -m twirpy`."""

from twirpy.cli.commands import app

if __name__ == "__main__":
    app()
