#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

import json
import sys

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional

import click

from plugscope_core import config, logger

from .config import ENV_CONFIGFILE, NVIM_SECTION, NvimConfig
from .errors import EvalError
from .session import Session
from .vim_plug import PlugError, VimPlugManager


#
# Load configuration file
#
def load_configuration(
    configpath: Optional[Path],
    address: Optional[str] = None,
) -> Any:  # noqa ANN401
    if configpath:
        cnf = config.read_config_toml(configpath)
    else:
        cnf = {}
    if address:
        cnf.setdefault(NVIM_SECTION, {})["address"] = address
    try:
        builder = config.ConfBuilder()
        conf = builder.validate(cnf)
    except config.ConfigError as err:
        click.echo(f"Configuration error: {err}", err=True)
        sys.exit(1)
    builder.register_as_service()
    return conf


@contextmanager
def open_session(conf: NvimConfig, exit_on_error: bool = True) -> Generator[Session, None, None]:
    try:
        session = Session.open(conf)
    except EvalError as err:
        if exit_on_error:
            click.echo(f"Nvim connection error: {err}", err=True)
            sys.exit(1)
        logger.error("Nvim connection error: %s", err)
        session = Session(conf)
    session.register_as_service()
    try:
        yield session
    finally:
        session.close()


FilePathType = click.Path(
    exists=True,
    readable=True,
    dir_okay=False,
    path_type=Path,
)


def global_options(f):
    f = click.option(
        "--conf", "-C", "configpath",
        envvar=ENV_CONFIGFILE,
        help="configuration file",
        type=FilePathType,
    )(f)
    f = click.option(
        "--address", "-a",
        help="Nvim server address (socket path or host:port)",
    )(f)
    f = click.option("--verbose", "-v", is_flag=True, help="Set verbose mode")(f)
    return f


def _setup(configpath: Optional[Path], address: Optional[str], verbose: bool) -> Any:  # noqa ANN401
    conf = load_configuration(configpath, address)
    logger.setup_log_handler(logger.LogLevel.DEBUG if verbose else conf.logging.level)
    return conf


@click.group("commands")
def cli_commands():
    """Inspect vim-plug in a running Nvim

    \b
    Environment variables:
        NVIM: address of the Nvim server
        CONF_NVIM__ADDRESS: same as above, take precedence
        PLUGSCOPE_CONFIG: path to configuration file
    """
    pass


@cli_commands.command("plugs")
@global_options
@click.option("--json", "as_json", is_flag=True, help="Output as json")
@click.option("--pretty", is_flag=True, help="Pretty format")
def list_plugs(
    configpath: Optional[Path],
    address: Optional[str],
    verbose: bool,
    as_json: bool,
    pretty: bool,
):
    """List vim-plug plugins in load order"""
    conf = _setup(configpath, address, verbose)
    with open_session(conf.nvim) as session:
        try:
            plugs = VimPlugManager(session).get_plugs()
        except PlugError as err:
            click.echo(f"Error: {err}", err=True)
            sys.exit(1)

    if as_json:
        indent = 4 if pretty else None
        click.echo(json.dumps([p.model_dump() for p in plugs], indent=indent))
    else:
        for p in plugs:
            click.echo(f"{p.name}\t{p.uri}")


@cli_commands.command("state")
@global_options
def print_state(configpath: Optional[Path], address: Optional[str], verbose: bool):
    """Print vim-plug load state"""
    conf = _setup(configpath, address, verbose)
    with open_session(conf.nvim, exit_on_error=False) as session:
        state = VimPlugManager(session).get_state()
    click.echo(state.name)


@cli_commands.command("config")
@click.option(
    "--conf", "-C", "configpath",
    envvar=ENV_CONFIGFILE,
    help="configuration file",
    type=FilePathType,
)
@click.option("--schema", is_flag=True, help="Print configuration schema")
@click.option("--pretty", is_flag=True, help="Pretty format")
def print_config(configpath: Optional[Path], schema: bool, pretty: bool):
    """Print configuration as json and exit"""
    indent = 4 if pretty else None
    if schema:
        click.echo(json.dumps(config.ConfBuilder().json_schema(), indent=indent))
    else:
        click.echo(load_configuration(configpath).model_dump_json(indent=indent))
