#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

import os

from typing import Annotated, Optional

from pydantic import AfterValidator, Field

from plugscope_core import config

NVIM_SECTION = "nvim"

ENV_CONFIGFILE = "PLUGSCOPE_CONFIG"


def parse_address(address: str) -> str | tuple[str, int]:
    """ Parse a Nvim server address

        Return either a unix socket path or a (host, port) tuple
        for tcp addresses ('host:port', '[::1]:port').
    """
    address = address.strip()
    if not address:
        raise ValueError("Empty Nvim address")

    if address.startswith("unix:"):
        return address.removeprefix("unix:")

    host, sep, port = address.rpartition(":")
    if sep and host and port.isdigit() and "/" not in host:
        num = int(port)
        if not 0 < num < 65536:
            raise ValueError(f"Invalid port number in address '{address}'")
        return (host.strip("[]"), num)

    return address


def _validate_address(v: Optional[str]) -> Optional[str]:
    if v is not None:
        # This raise a ValueError on invalid address
        parse_address(v)
    return v


def _default_address() -> Optional[str]:
    # Set by Nvim for child processes (i.e :terminal jobs)
    return os.getenv("NVIM") or os.getenv("NVIM_LISTEN_ADDRESS") or None


@config.section(NVIM_SECTION)
class NvimConfig(config.ConfigBase):
    address: Annotated[
        Optional[str],
        AfterValidator(_validate_address),
    ] = Field(
        default_factory=_default_address,
        title="Nvim server address",
        description=(
            "The address of a running Nvim server:\n"
            "either a unix socket path or 'host:port'.\n"
            "Defaults to the value of the 'NVIM' environment\n"
            "variable."
        ),
    )
    embed: bool = Field(
        default=False,
        title="Embed Nvim",
        description=(
            "Spawn an embedded Nvim process when no\n"
            "address is configured."
        ),
    )
    nvim_command: list[str] = Field(
        default=["nvim", "--embed", "--headless"],
        min_length=1,
        title="Embedded Nvim command",
        description="The command used for spawning an embedded Nvim.",
    )
    connect_timeout: float = Field(
        default=5.0,
        gt=0,
        title="Connection timeout",
        description=(
            "Timeout in seconds for establishing the connection.\n"
            "Remote calls themselves are never timed out."
        ),
    )
    report_to_editor: bool = Field(
        default=False,
        title="Report errors in editor",
        description=(
            "Echo diagnostic errors in the Nvim message area\n"
            "in addition to the log output."
        ),
    )
