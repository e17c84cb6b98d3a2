"""msgpack-rpc messages exchanged with the Nvim process

See `:help msgpack-rpc` in Nvim:

    request:      [0, msgid, method, params]
    response:     [1, msgid, error, result]
    notification: [2, method, params]
"""

from enum import IntEnum
from typing import (
    Annotated,
    Any,
    Literal,
    Optional,
    Union,
)

from msgpack import packb
from pydantic import BaseModel, Field

from .errors import ProtocolError


class MsgType(IntEnum):
    REQUEST = 0
    RESPONSE = 1
    NOTIFICATION = 2


class MsgModel(BaseModel, frozen=True):
    def pack(self) -> bytes:
        raise NotImplementedError


#
# REQUEST
#
class RequestMsg(MsgModel):
    msg_type: Literal[MsgType.REQUEST] = MsgType.REQUEST
    msgid: int
    method: str
    params: list[Any] = Field([])

    def pack(self) -> bytes:
        return packb([self.msg_type.value, self.msgid, self.method, self.params])


#
# RESPONSE
#
class RemoteError(MsgModel):
    # Nvim error types: 0 = Exception, 1 = Validation
    code: int
    message: str


class ResponseMsg(MsgModel):
    msg_type: Literal[MsgType.RESPONSE] = MsgType.RESPONSE
    msgid: int
    error: Optional[RemoteError] = None
    result: Any = None

    def pack(self) -> bytes:
        error = [self.error.code, self.error.message] if self.error else None
        return packb([self.msg_type.value, self.msgid, error, self.result])


#
# NOTIFICATION
#
class NotificationMsg(MsgModel):
    msg_type: Literal[MsgType.NOTIFICATION] = MsgType.NOTIFICATION
    method: str
    params: list[Any] = Field([])

    def pack(self) -> bytes:
        return packb([self.msg_type.value, self.method, self.params])


Message = Annotated[
    Union[
        RequestMsg,
        ResponseMsg,
        NotificationMsg,
    ],
    Field(discriminator="msg_type"),
]


def _remote_error(error: Any) -> Optional[RemoteError]:  # noqa ANN401
    match error:
        case None:
            return None
        case [int(code), str(message)]:
            return RemoteError(code=code, message=message)
        case [int(code), bytes(message)]:
            return RemoteError(code=code, message=message.decode(errors="replace"))
        case _:
            return RemoteError(code=-1, message=str(error))


def decode_message(obj: Any) -> Message:  # noqa ANN401
    """ Convert a decoded msgpack-rpc frame into a message
    """
    match obj:
        case [MsgType.REQUEST, int(msgid), str(method), [*params]]:
            return RequestMsg(msgid=msgid, method=method, params=params)
        case [MsgType.RESPONSE, int(msgid), error, result]:
            return ResponseMsg(msgid=msgid, error=_remote_error(error), result=result)
        case [MsgType.NOTIFICATION, str(method), [*params]]:
            return NotificationMsg(method=method, params=params)
        case _:
            raise ProtocolError(f"Invalid msgpack-rpc message: {obj!r}")
