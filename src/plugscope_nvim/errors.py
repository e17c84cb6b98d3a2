#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

from typing import Optional

from plugscope_core.errors import PlugscopeError


class ProtocolError(PlugscopeError):
    """Raised on malformed msgpack-rpc frames"""
    pass


class EvalError(PlugscopeError):
    """ Remote evaluation failure

        `code` is the error type returned by Nvim when the
        request itself failed remotely, None for transport
        failures.
    """
    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class RpcConnectionError(EvalError):
    pass


class BorrowError(PlugscopeError):
    pass
