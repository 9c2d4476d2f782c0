"""
Adapters turning rich subjects and objects into plain identifiers.

A role may be passed as a string, a list of strings, or any object that
exposes ``get_role_id()`` or a ``role_id`` field. Resources work the same
way through ``get_resource_id()`` / ``resource_id``, except that anything
else is used as a literal identifier.
"""

from collections.abc import Mapping
from typing import Any, List, Optional, Protocol, Union, runtime_checkable

from shared.errors import RoleResolutionError


RoleId = Optional[Union[str, List[str]]]


@runtime_checkable
class RoleHolder(Protocol):
    def get_role_id(self) -> Union[str, List[str]]:
        ...


@runtime_checkable
class ResourceHolder(Protocol):
    def get_resource_id(self) -> Any:
        ...


def _is_role_value(value: Any) -> bool:
    return isinstance(value, (str, list, tuple))


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def extract_role(role: Any) -> RoleId:
    """Return the role identifier(s) carried by ``role``."""
    if role is None:
        return None
    if isinstance(role, str):
        return role
    if isinstance(role, (list, tuple)):
        return list(role)
    if isinstance(role, RoleHolder):
        return extract_role(role.get_role_id())

    role_id = _field(role, "role_id")
    if _is_role_value(role_id):
        return extract_role(role_id)

    raise RoleResolutionError(details={"role_type": type(role).__name__})


def extract_resource(resource: Any) -> Any:
    """Return the resource identifier carried by ``resource``."""
    if resource is None or isinstance(resource, str):
        return resource
    if isinstance(resource, ResourceHolder):
        return resource.get_resource_id()

    resource_id = _field(resource, "resource_id")
    if resource_id is not None:
        return resource_id
    return resource
