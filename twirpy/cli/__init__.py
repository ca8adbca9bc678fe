"""CLI module for twirpy."""
