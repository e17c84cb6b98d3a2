#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

""" vim-plug inspection

    Query the vim-plug globals of a live Nvim session:

    * `g:plugs`: plugin name -> descriptor (a dict holding at least `uri`)
    * `g:plugs_order`: plugin names in load order
    * `g:loaded_plug`: set once vim-plug is loaded

    Both lists may be edited concurrently in the editor and may be
    inconsistent: entries that cannot be resolved are dropped.
"""
from enum import Enum
from typing import ClassVar, Iterator, Optional

from pydantic import BaseModel

from plugscope_core import componentmanager, logger
from plugscope_core.errors import PlugscopeError

from . import values
from .errors import EvalError
from .session import NVIM_SESSION_CONTRACTID, Session

PLUGS_EXPR = "g:plugs"
PLUGS_ORDER_EXPR = "g:plugs_order"
LOADED_PROBE_EXPR = "exists('g:loaded_plug')"


class PluginRecord(BaseModel, frozen=True):
    name: str
    uri: str


class LoadState(Enum):
    ALREADY_LOADED = "already_loaded"
    UNKNOWN = "unknown"


#
# Errors
#

class PlugErrorKind(Enum):
    NOT_READY = "not_ready"
    TRANSPORT = "transport"
    DECODE = "decode"


class PlugError(PlugscopeError):
    kind: ClassVar[PlugErrorKind]

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotReadyError(PlugError):
    kind = PlugErrorKind.NOT_READY

    def __init__(self):
        super().__init__("Nvim not initialized")


class TransportError(PlugError):
    kind = PlugErrorKind.TRANSPORT

    def __init__(self, message: str, detail: str):
        super().__init__(f"{message}: {detail}")
        self.detail = detail


class DecodeError(PlugError):
    kind = PlugErrorKind.DECODE

    def __init__(self, expected: str, message: str):
        super().__init__(message)
        self.expected = expected


class VimPlugManager:
    """ Inspect vim-plug state

        The session is borrowed for each remote call, nothing
        is cached between calls.
    """

    def __init__(self, session: Optional[Session] = None) -> None:
        self._session = session

    def initialize(self, session: Session):
        self._session = session

    def _ready_session(self) -> Optional[Session]:
        session = self._session
        if session is None and componentmanager.has_service(NVIM_SESSION_CONTRACTID):
            try:
                session = Session.get_service()
            except EvalError as err:
                logger.error("Nvim session not available: %s", err)
                return None
        return session if session is not None and session.is_ready() else None

    def get_plugs(self) -> list[PluginRecord]:
        """ Return plugins in `g:plugs_order` order

            Raise a PlugError if the session is not ready or if
            one of the globals cannot be retrieved.
        """
        session = self._ready_session()
        if session is None:
            raise NotReadyError()

        try:
            g_plugs = session.evaluate(PLUGS_EXPR)
        except EvalError as err:
            raise TransportError("Can't retrieve g:plugs map", str(err)) from None

        plugs_map = values.as_map(g_plugs)
        if plugs_map is None:
            raise DecodeError("g:plugs map", "Can't retrieve g:plugs map")
        plugs_map = values.to_attrs_map(plugs_map)
        if plugs_map is None:
            raise DecodeError("g:plugs map", "Can't convert g:plugs map keys to string")

        try:
            g_plugs_order = session.evaluate(PLUGS_ORDER_EXPR)
        except EvalError as err:
            raise TransportError("Can't retrieve g:plugs_order array", str(err)) from None

        order = values.as_array(g_plugs_order)
        if order is None:
            raise DecodeError("g:plugs_order array", "Can't find g:plugs_order array")

        return list(_resolve_plugs(plugs_map, order))

    def get_state(self) -> LoadState:
        """ Probe the vim-plug load state

            Never raise: evaluation errors are reported to the
            session diagnostic sink.
        """
        session = self._ready_session()
        if session is None:
            return LoadState.UNKNOWN

        with session.borrow() as client:
            try:
                loaded_plug = client.eval(LOADED_PROBE_EXPR)
            except EvalError as err:
                session.report_error(err, client)
                return LoadState.UNKNOWN

        match values.as_int(loaded_plug):
            case int(n) if n > 0:
                return LoadState.ALREADY_LOADED
            case _:
                return LoadState.UNKNOWN


def _resolve_plugs(plugs_map: dict, order: list) -> Iterator[PluginRecord]:
    for item in order:
        name = values.as_str(item)
        if name is None:
            logger.trace("Ignoring non string entry in g:plugs_order: %r", item)
            continue
        desc = values.as_map(plugs_map.get(name))
        attrs = values.to_attrs_map(desc) if desc is not None else None
        uri = values.as_str(values.get_attr(attrs, "uri"))
        if uri is None:
            logger.trace("No valid descriptor for plugin '%s'", name)
            continue
        yield PluginRecord(name=name, uri=uri)
