from .cli import cli_commands

cli_commands()
