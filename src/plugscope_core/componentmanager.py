#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

""" Components are a way to share long lived objects using
    contract ids.

    A contract id names a service (i.e the editor session) so that
    call sites may reach it without having it passed explicitly
    through every call.

    Services may be registered either as instances or as factories:
    a factory is called lazily on the first `get_service` call and its
    result is kept as the service singleton.
"""
# Allow using 'Any' since component manager deal with anything
# ruff: noqa: ANN401

import sys

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from .errors import PlugscopeError


class ComponentManagerError(PlugscopeError):
    pass


class FactoryNotFoundError(ComponentManagerError):
    pass


class NoRegisteredFactoryError(ComponentManagerError):
    pass


T = TypeVar('T')


@dataclass(frozen=True)
class FactoryEntry(Generic[T]):
    create_instance: Callable[[], T]
    service: Optional[T]

    def _bind_service(self, instance: T) -> 'FactoryEntry':
        return FactoryEntry(self.create_instance, instance)


def _warn(msg: str):
    print("WARNING:", msg, file=sys.stderr, flush=True)  # noqa T201


class ComponentManager:

    def __init__(self) -> None:
        self._contractIDs: dict[str, FactoryEntry] = {}

    def register_factory(self, contractID: str, factory: Callable[[], Any]) -> None:
        """ Register a factory for the given contract ID
        """
        if not callable(factory):
            raise ValueError('factory must be a callable object')

        if contractID in self._contractIDs:
            _warn(f"Overriding factory for '{contractID}'")

        self._contractIDs[contractID] = FactoryEntry(factory, None)

    def register_service(self, contractID: str, service: Any) -> None:
        """ Register an instance object as singleton service
        """
        def nullFactory():
            raise NoRegisteredFactoryError(contractID)

        if contractID in self._contractIDs:
            _warn(f"Overriding service for '{contractID}'")

        self._contractIDs[contractID] = FactoryEntry(nullFactory, service)

    def unregister(self, contractID: str) -> Optional[Any]:
        """ Remove the contract id and return the bound service if any
        """
        fe = self._contractIDs.pop(contractID, None)
        return fe.service if fe else None

    def has_service(self, contractID: str) -> bool:
        return contractID in self._contractIDs

    def create_instance(self, contractID: str) -> Any:
        """ Create an instance of the object referenced by its
            contract id.
        """
        fe = self._contractIDs.get(contractID)
        if fe is None:
            raise FactoryNotFoundError(contractID)
        return fe.create_instance()

    def get_service(self, contractID: str) -> Any:
        """ Return instance object as singleton
        """
        fe = self._contractIDs.get(contractID)
        if fe is None:
            raise FactoryNotFoundError(contractID)
        if fe.service is None:
            fe = fe._bind_service(fe.create_instance())
            self._contractIDs[contractID] = fe
        return fe.service


# Global static component Manager
gComponentManager = ComponentManager()


#
# Shortcuts
#

def get_service(contractID: str) -> Any:
    """ Alias to component_manager.get_service
    """
    return gComponentManager.get_service(contractID)


def register_service(contractID: str, obj: Any) -> None:
    gComponentManager.register_service(contractID, obj)


def unregister(contractID: str) -> Optional[Any]:
    return gComponentManager.unregister(contractID)


def has_service(contractID: str) -> bool:
    return gComponentManager.has_service(contractID)
