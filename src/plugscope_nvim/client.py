#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

""" Synchronous msgpack-rpc client for Nvim
"""
from collections import deque
from itertools import count
from typing import (
    Any,
    Iterator,
    Protocol,
)

from plugscope_core import logger

from . import messages as _m
from .config import NvimConfig
from .connection import Connection, open_connection
from .errors import EvalError, ProtocolError, RpcConnectionError

__all__ = [
    "EditorClient",
    "EvalError",
    "NeovimClient",
    "RpcConnectionError",
]


class EditorClient(Protocol):
    """ Evaluation capability consumed by the session
    """
    def eval(self, expression: str) -> Any: ...  # noqa ANN401
    def api_info(self) -> Any: ...  # noqa ANN401
    def err_writeln(self, message: str): ...
    def close(self): ...


# Oldest notifications are discarded beyond this limit
MAX_NOTIFICATIONS = 1024


class NeovimClient:

    def __init__(self, conn: Connection, max_notifications: int = MAX_NOTIFICATIONS) -> None:
        self._conn = conn
        self._ids = count(1)
        self._notifications: deque[_m.NotificationMsg] = deque(maxlen=max_notifications)

    @classmethod
    def connect(cls, conf: NvimConfig) -> 'NeovimClient':
        return cls(open_connection(conf))

    @property
    def connection(self) -> Connection:
        return self._conn

    def request(self, method: str, *args) -> Any:  # noqa ANN401
        """ Send a request and wait for its response

            Notifications received in between are queued,
            requests from Nvim are answered with an error.
        """
        msgid = next(self._ids)
        try:
            self._conn.send(_m.RequestMsg(msgid=msgid, method=method, params=list(args)))
            while True:
                msg = self._conn.recv()
                match msg:
                    case _m.ResponseMsg(msgid=r_id) if r_id == msgid:
                        break
                    case _m.ResponseMsg(msgid=r_id):
                        logger.warning("Discarding response for unknown request id %s", r_id)
                    case _m.NotificationMsg():
                        self._notifications.append(msg)
                    case _m.RequestMsg():
                        logger.debug("Rejecting request '%s' from Nvim", msg.method)
                        self._conn.send(
                            _m.ResponseMsg(
                                msgid=msg.msgid,
                                error=_m.RemoteError(code=0, message="Requests are not supported"),
                            ),
                        )
        except ProtocolError as err:
            self.close()
            raise RpcConnectionError(str(err)) from None
        except ValueError as err:
            # Undecodable msgpack data
            self.close()
            raise RpcConnectionError(f"Invalid data from Nvim: {err}") from None
        except OSError as err:
            self.close()
            raise RpcConnectionError(f"Nvim connection error: {err}") from None

        if msg.error:
            raise EvalError(msg.error.message, code=msg.error.code)
        return msg.result

    def notifications(self) -> Iterator[_m.NotificationMsg]:
        """ Drain queued notifications
        """
        while self._notifications:
            yield self._notifications.popleft()

    #
    # Nvim API
    #

    def eval(self, expression: str) -> Any:  # noqa ANN401
        return self.request("nvim_eval", expression)

    def api_info(self) -> Any:  # noqa ANN401
        return self.request("nvim_get_api_info")

    def err_writeln(self, message: str):
        self.request("nvim_err_writeln", message)

    def close(self):
        self._conn.close()
