#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

"""Contract checks"""

from .errors import PlugscopeError


class PreconditionError(PlugscopeError):
    pass


def assert_precondition(condition: bool, message: str = "Precondition failed"):
    if not condition:
        raise PreconditionError(message)