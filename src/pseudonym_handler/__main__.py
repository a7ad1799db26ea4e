"""Entry point for running pseudonym_handler as a module.

This allows the package to be executed as:
    python -m pseudonym_handler
"""

from pseudonym_handler.cli.main import cli

if __name__ == "__main__":
    cli()
