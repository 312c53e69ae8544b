"""Static tables translating directory data and options into principal fields."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class FieldMapKind(str, Enum):
    ldap = "ldap"
    user = "user"
    portal_user = "portal_user"


# principal field => option key; for ``ldap`` the option value names the directory attribute
FIELD_MAPS: Mapping[FieldMapKind, Mapping[str, str]] = MappingProxyType(
    {
        FieldMapKind.ldap: MappingProxyType(
            {
                "username": "user_name_attribute",
                "first_name": "user_first_name_attribute",
                "last_name": "user_last_name_attribute",
                "title": "user_title_attribute",
                "email_address": "user_email_address_attribute",
                "phone_number": "user_phone_number_attribute",
            }
        ),
        FieldMapKind.user: MappingProxyType(
            {
                "teams_ids": "user_teams_ids",
                "default_team_id": "user_default_team_id",
            }
        ),
        FieldMapKind.portal_user: MappingProxyType(
            {
                "portals_ids": "portal_user_portals_ids",
                "portal_roles_ids": "portal_user_roles_ids",
            }
        ),
    }
)


def load_fields(kind: FieldMapKind, options: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``{principal field: option value}`` for the options present in ``options``."""
    fields: dict[str, Any] = {}
    for field_name, option_key in FIELD_MAPS[kind].items():
        value = options.get(option_key)
        if value is None:
            continue
        fields[field_name] = value
    return fields
