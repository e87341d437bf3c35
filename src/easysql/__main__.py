"""Entry point for running easysql as a module."""

from easysql.server import cli_entry

if __name__ == "__main__":
    cli_entry()
