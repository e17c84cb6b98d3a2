#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

""" Shared Nvim session

    The session holds the single client connected to Nvim.
    Call sites get exclusive access to the client with `borrow()`
    for the duration of a remote call.
"""
import threading

from contextlib import contextmanager
from enum import Enum, auto
from typing import (
    Any,
    Callable,
    Iterator,
    Optional,
    Self,
)

from plugscope_core import componentmanager, logger
from plugscope_core.condition import assert_precondition

from .client import EditorClient, NeovimClient
from .config import NvimConfig
from .errors import BorrowError, EvalError

NVIM_SESSION_CONTRACTID = '@plugscope/nvim-session;1'


class SessionState(Enum):
    UNINITIALIZED = auto()
    INIT_IN_PROGRESS = auto()
    INITIALIZED = auto()
    INIT_ERROR = auto()


class Session:

    def __init__(self, conf: Optional[NvimConfig] = None) -> None:
        self._conf = conf or NvimConfig()
        self._client: Optional[EditorClient] = None
        self._state = SessionState.UNINITIALIZED
        self._lock = threading.Lock()
        self._channel_id: Optional[int] = None

    @classmethod
    def open(
        cls,
        conf: NvimConfig,
        connect: Callable[[NvimConfig], EditorClient] = NeovimClient.connect,
    ) -> Self:
        """ Connect and initialize a new session
        """
        client = connect(conf)
        try:
            return cls(conf).initialize(client)
        except EvalError:
            client.close()
            raise

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def channel_id(self) -> Optional[int]:
        return self._channel_id

    def is_ready(self) -> bool:
        return self._state == SessionState.INITIALIZED

    def initialize(self, client: EditorClient) -> Self:
        """ Attach the client and run the setup handshake
        """
        assert_precondition(
            self._state != SessionState.INIT_IN_PROGRESS,
            "Session initialization already in progress",
        )
        with self._lock:
            self._client = client
            self._state = SessionState.INIT_IN_PROGRESS
            try:
                api_info = client.api_info()
            except EvalError as err:
                logger.error("Nvim session initialization failed: %s", err)
                self._state = SessionState.INIT_ERROR
                raise

            match api_info:
                case [int(channel_id), *_]:
                    self._channel_id = channel_id
                case _:
                    logger.warning("Unexpected Nvim api info: %r", api_info)

            self._state = SessionState.INITIALIZED

        logger.debug("Nvim session initialized (channel %s)", self._channel_id)
        return self

    @contextmanager
    def borrow(self, blocking: bool = True) -> Iterator[EditorClient]:
        """ Exclusive access to the client
        """
        assert_precondition(self._client is not None, "Session has no client")
        if not self._lock.acquire(blocking):
            raise BorrowError("Nvim session already borrowed")
        try:
            yield self._client  # type: ignore [misc]
        finally:
            self._lock.release()

    def evaluate(self, expression: str) -> Any:  # noqa ANN401
        """ Evaluate a vimscript expression
        """
        with self.borrow() as client:
            return client.eval(expression)

    def report_error(self, err: Exception, client: EditorClient):
        """ Diagnostic sink for errors that are not returned to callers
        """
        logger.error("Nvim error: %s", err)
        if self._conf.report_to_editor:
            try:
                client.err_writeln(f"plugscope: {err}")
            except EvalError as e:
                logger.warning("Cannot report error to Nvim: %s", e)

    def close(self):
        with self._lock:
            if self._client:
                self._client.close()
                self._client = None
            self._state = SessionState.UNINITIALIZED
            self._channel_id = None

    #
    # Service registration
    #

    def register_as_service(self):
        componentmanager.register_service(NVIM_SESSION_CONTRACTID, self)

    @classmethod
    def get_service(cls) -> Self:
        """ Return the session registered as a service.
            This require that register_as_service (or `register_session_factory`)
            has been called in the current context
        """
        return componentmanager.get_service(NVIM_SESSION_CONTRACTID)


def register_session_factory(conf: NvimConfig):
    """ Register a lazily opened session

        The connection is made on first access to the
        session service. On connection failure, the
        registered session is left uninitialized.
    """
    def _open_session() -> Session:
        try:
            return Session.open(conf)
        except EvalError as err:
            logger.error("Cannot open Nvim session: %s", err)
            return Session(conf)

    componentmanager.gComponentManager.register_factory(
        NVIM_SESSION_CONTRACTID,
        _open_session,
    )
