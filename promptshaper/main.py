# promptshaper/main.py
"""Main entry point for the promptshaper CLI application."""

from promptshaper.cli.interface import main_cli


def entrypoint():
    """Function to be called by the script defined in pyproject.toml."""
    main_cli(prog_name="promptshaper")

if __name__ == '__main__':
    entrypoint()
