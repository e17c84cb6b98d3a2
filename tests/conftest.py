import os
import socket
import threading

from typing import Any, Callable, Optional

import msgpack
import pytest

from plugscope_core import componentmanager
from plugscope_nvim.config import NvimConfig
from plugscope_nvim.errors import EvalError
from plugscope_nvim.session import NVIM_SESSION_CONTRACTID, Session

# Disable loglevel setting notice
os.environ["PLUGSCOPE_LOGLEVEL_NOTICE"] = "no"


class FakeClient:
    """ Stand in for a Nvim client

        Expressions are looked up in `values`, unknown
        expressions fail like an undefined variable does.
    """
    def __init__(
        self,
        values: Optional[dict[str, Any]] = None,
        errors: Optional[dict[str, Exception]] = None,
    ):
        self.values = values or {}
        self.errors = errors or {}
        self.calls: list[str] = []
        self.messages: list[str] = []
        self.closed = False

    def eval(self, expression: str) -> Any:
        self.calls.append(expression)
        if expression in self.errors:
            raise self.errors[expression]
        if expression not in self.values:
            raise EvalError(f"Vim:E121: Undefined variable: {expression}", code=0)
        return self.values[expression]

    def api_info(self) -> Any:
        return [3, {"version": {"major": 0, "minor": 10, "patch": 0}}]

    def err_writeln(self, message: str):
        self.messages.append(message)

    def close(self):
        self.closed = True


@pytest.fixture(scope="function")
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture(scope="function")
def session(client: FakeClient) -> Session:
    return Session(NvimConfig(address=None)).initialize(client)


@pytest.fixture(autouse=True)
def clear_session_service():
    yield
    componentmanager.unregister(NVIM_SESSION_CONTRACTID)


class FakeNvim:
    """ Minimal msgpack-rpc peer

        Every received frame is recorded, requests are passed
        to the handler.
    """
    def __init__(self, sock: socket.socket, handler: Callable[[socket.socket, list], None]):
        self._sock = sock
        self._handler = handler
        self._thread = threading.Thread(target=self._run, daemon=True)
        self.received: list[Any] = []
        self._thread.start()

    def _run(self):
        unpacker = msgpack.Unpacker(raw=False)
        while True:
            try:
                data = self._sock.recv(4096)
            except OSError:
                break
            if not data:
                break
            unpacker.feed(data)
            for msg in unpacker:
                self.received.append(msg)
                if msg[0] == 0:
                    self._handler(self._sock, msg)

    def join(self):
        self._thread.join(5)


def eval_handler(values: dict[str, Any]) -> Callable[[socket.socket, list], None]:
    """ Answer `nvim_eval` requests from `values`

        `bytes` values are sent as already packed msgpack data.
    """
    def handler(sock: socket.socket, msg: list):
        _, msgid, method, params = msg
        match method:
            case "nvim_eval" if params[0] in values:
                value = values[params[0]]
                if isinstance(value, bytes):
                    # fixarray of 4 items with a raw result
                    header = b"\x94" + b"".join(msgpack.packb(v) for v in (1, msgid, None))
                    sock.sendall(header + value)
                else:
                    sock.sendall(msgpack.packb([1, msgid, None, value]))
            case "nvim_eval":
                error = [0, f"Vim:E121: Undefined variable: {params[0]}"]
                sock.sendall(msgpack.packb([1, msgid, error, None]))
            case "nvim_get_api_info":
                sock.sendall(msgpack.packb([1, msgid, None, [1, {"version": {}}]]))
            case _:
                sock.sendall(msgpack.packb([1, msgid, [1, f"Invalid method: {method}"], None]))
    return handler


@pytest.fixture(scope="function")
def socket_pair():
    local, remote = socket.socketpair()
    yield local, remote
    local.close()
    remote.close()
