#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

""" Byte stream connections to a Nvim process

    Frames are msgpack objects written back to back on the
    stream, there is no length prefix: a streaming unpacker
    is fed until a complete object is available.
"""
import os
import socket
import subprocess  # nosec

from typing import Optional

import msgpack

from plugscope_core import logger

from .config import NvimConfig, parse_address
from .errors import RpcConnectionError
from .messages import Message, MsgModel, decode_message

READ_SIZE = 65536


class Connection:
    """ Base msgpack-rpc connection
    """
    def __init__(self):
        # Nvim may send maps with integer keys and strings
        # that are not valid utf-8
        self._unpacker = msgpack.Unpacker(
            raw=False,
            strict_map_key=False,
            unicode_errors="surrogateescape",
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _read(self, size: int) -> bytes:
        raise NotImplementedError

    def _write(self, data: bytes):
        raise NotImplementedError

    def _close(self):
        pass

    def send(self, msg: MsgModel):
        if self._closed:
            raise RpcConnectionError("Connection closed")
        self._write(msg.pack())

    def recv(self) -> Message:
        """ Blocking read of the next message
        """
        while True:
            try:
                return decode_message(next(self._unpacker))
            except StopIteration:
                pass
            if self._closed:
                raise RpcConnectionError("Connection closed")
            data = self._read(READ_SIZE)
            # Take care if the peer close the connection then
            # read() will return an empty buffer (EOF)
            if not data:
                logger.error("Connection closed by Nvim")
                self.close()
                raise RpcConnectionError("Connection closed by Nvim")
            self._unpacker.feed(data)

    def close(self):
        if not self._closed:
            self._closed = True
            self._close()


class SocketConnection(Connection):
    def __init__(self, sock: socket.socket):
        super().__init__()
        self._sock = sock

    def _read(self, size: int) -> bytes:
        return self._sock.recv(size)

    def _write(self, data: bytes):
        self._sock.sendall(data)

    def _close(self):
        self._sock.close()


class ProcessConnection(Connection):
    """ Connection to the stdin/stdout of an embedded Nvim
    """
    def __init__(self, proc: subprocess.Popen):
        super().__init__()
        self._proc = proc
        assert proc.stdin is not None and proc.stdout is not None  # nosec
        self._in = proc.stdout.fileno()
        self._out = proc.stdin

    def _read(self, size: int) -> bytes:
        return os.read(self._in, size)

    def _write(self, data: bytes):
        self._out.write(data)
        self._out.flush()

    def _close(self, timeout: float = 5.0):
        # Closing stdin makes Nvim exit
        self._out.close()
        try:
            self._proc.wait(timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Embedded Nvim (pid %s) did not exit, terminating", self._proc.pid)
            self._proc.terminate()
            self._proc.wait()
        finally:
            if self._proc.stdout:
                self._proc.stdout.close()


def connect_socket(address: str, timeout: Optional[float] = None) -> SocketConnection:
    """ Connect to a listening Nvim (unix socket or tcp)
    """
    addr = parse_address(address)
    try:
        match addr:
            case (str(host), int(port)):
                sock = socket.create_connection((host, port), timeout=timeout)
            case str(path):
                sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
                try:
                    sock.settimeout(timeout)
                    sock.connect(path)
                except OSError:
                    sock.close()
                    raise
    except OSError as err:
        raise RpcConnectionError(f"Cannot connect to Nvim at '{address}': {err}") from None

    # Remote calls are blocking
    sock.settimeout(None)
    logger.debug("Connected to Nvim at %s", address)
    return SocketConnection(sock)


def spawn_embedded(command: list[str]) -> ProcessConnection:
    """ Start an embedded Nvim process
    """
    try:
        proc = subprocess.Popen(  # nosec
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
        )
    except OSError as err:
        raise RpcConnectionError(f"Cannot start '{command[0]}': {err}") from None

    logger.debug("Started embedded Nvim (pid %s)", proc.pid)
    return ProcessConnection(proc)


def open_connection(conf: NvimConfig) -> Connection:
    if conf.address:
        return connect_socket(conf.address, conf.connect_timeout)
    elif conf.embed:
        return spawn_embedded(conf.nvim_command)
    else:
        raise RpcConnectionError("No Nvim address configured")
