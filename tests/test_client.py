import socket

import msgpack
import pytest

from plugscope_nvim.client import NeovimClient
from plugscope_nvim.connection import SocketConnection
from plugscope_nvim.errors import EvalError, RpcConnectionError

from .conftest import FakeNvim, eval_handler


def test_client_eval(socket_pair):
    local, remote = socket_pair
    peer = FakeNvim(remote, eval_handler({"g:plugs_order": ["foo", "bar"]}))

    client = NeovimClient(SocketConnection(local))
    assert client.api_info()[0] == 1
    assert client.eval("g:plugs_order") == ["foo", "bar"]

    with pytest.raises(EvalError) as excinfo:
        client.eval("g:plugs")
    assert excinfo.value.code == 0
    assert str(excinfo.value) == "Vim:E121: Undefined variable: g:plugs"

    assert [r[1] for r in peer.received] == [1, 2, 3]


def test_client_queue_notifications(socket_pair):
    local, remote = socket_pair

    def handler(sock: socket.socket, msg: list):
        _, msgid, _, params = msg
        sock.sendall(msgpack.packb([2, "redraw", [["flush"]]]))
        # Nvim may send a request before responding
        sock.sendall(msgpack.packb([0, 99, "plugscope_callback", []]))
        sock.sendall(msgpack.packb([1, msgid, None, 1]))

    peer = FakeNvim(remote, handler)

    client = NeovimClient(SocketConnection(local))
    assert client.eval("exists('g:loaded_plug')") == 1

    notifications = list(client.notifications())
    assert len(notifications) == 1
    assert notifications[0].method == "redraw"
    assert list(client.notifications()) == []

    # Wait for the peer to get all our frames
    client.close()
    peer.join()

    # Request from Nvim has been answered with an error
    reply = [r for r in peer.received if r[0] == 1]
    assert len(reply) == 1
    assert reply[0][1] == 99
    assert reply[0][2] is not None


def test_client_connection_closed(socket_pair):
    local, remote = socket_pair

    def handler(sock: socket.socket, msg: list):
        sock.shutdown(socket.SHUT_RDWR)

    FakeNvim(remote, handler)

    client = NeovimClient(SocketConnection(local))
    with pytest.raises(RpcConnectionError):
        client.eval("g:plugs")

    # Connection is no longer usable
    with pytest.raises(RpcConnectionError):
        client.eval("g:plugs")


def test_client_protocol_error(socket_pair):
    local, remote = socket_pair

    def handler(sock: socket.socket, msg: list):
        sock.sendall(msgpack.packb({"not": "a frame"}))

    FakeNvim(remote, handler)

    client = NeovimClient(SocketConnection(local))
    with pytest.raises(RpcConnectionError):
        client.eval("g:plugs")


def _non_utf8_plugs() -> bytes:
    # Nvim sends strings as msgpack str even when they are not valid utf-8
    data = msgpack.packb({"foo": {"uri": "https://x/foo", "dir": "XX"}})
    return data.replace(b"\xa2XX", b"\xa2\xff\xfe")


def test_client_non_utf8_string(socket_pair):
    local, remote = socket_pair
    FakeNvim(remote, eval_handler({"g:plugs": _non_utf8_plugs()}))

    client = NeovimClient(SocketConnection(local))
    plugs = client.eval("g:plugs")
    assert plugs["foo"]["uri"] == "https://x/foo"
    assert plugs["foo"]["dir"] == "\udcff\udcfe"


@pytest.mark.parametrize(
    "frame",
    [
        b"\xc1",                                # never used type byte
        b"\x94\x01\x01\xc0\xa2\xff",            # truncated frame
    ],
)
def test_client_invalid_data(socket_pair, frame):
    local, remote = socket_pair

    def handler(sock: socket.socket, msg: list):
        sock.sendall(frame)
        sock.shutdown(socket.SHUT_WR)

    FakeNvim(remote, handler)

    client = NeovimClient(SocketConnection(local))
    with pytest.raises(RpcConnectionError):
        client.eval("g:plugs")
    assert client.connection.closed


def test_client_notifications_limit(socket_pair):
    local, remote = socket_pair

    def handler(sock: socket.socket, msg: list):
        _, msgid, _, _ = msg
        for n in range(5):
            sock.sendall(msgpack.packb([2, "redraw", [n]]))
        sock.sendall(msgpack.packb([1, msgid, None, 1]))

    FakeNvim(remote, handler)

    client = NeovimClient(SocketConnection(local), max_notifications=2)
    assert client.eval("1") == 1
    # Oldest notifications are dropped
    assert [n.params for n in client.notifications()] == [[3], [4]]
