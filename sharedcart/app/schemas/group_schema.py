"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks, role values.
  - services/group_service.py: membership, admin rights, USER_NOT_FOUND,
    ALREADY_MEMBER, LAST_ADMIN.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, post_load, validate

from sharedcart.app.models.enums import MemberRole
from sharedcart.app.schemas.validators import non_empty_after_trim

_NAME_FIELD_KWARGS = dict(
    validate=[
        validate.Length(
            min=2,
            max=100,
            error="Group name must be between 2 and 100 characters.",
        ),
        non_empty_after_trim,
    ],
)


class CreateGroupSchema(Schema):
    """POST /groups"""

    name = fields.Str(required=True, **_NAME_FIELD_KWARGS)

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )

    @post_load
    def strip_name(self, data: dict, **kwargs) -> dict:
        data["name"] = data["name"].strip()
        return data


class UpdateGroupSchema(Schema):
    """PATCH /groups/:id — only provided fields change."""

    name = fields.Str(**_NAME_FIELD_KWARGS)

    description = fields.Str(
        allow_none=True,
        validate=validate.Length(max=500),
    )

    @post_load
    def strip_name(self, data: dict, **kwargs) -> dict:
        if "name" in data:
            data["name"] = data["name"].strip()
        return data


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Members are invited by email. Whether that email belongs to a registered
    user is a DB concern (USER_NOT_FOUND), checked in group_service.py.
    """

    email = fields.Email(required=True)

    role = fields.Enum(
        MemberRole,
        by_value=True,
        load_default=MemberRole.MEMBER,
    )


class UpdateMemberRoleSchema(Schema):
    """PUT /groups/:id/members/:uid/role"""

    role = fields.Enum(MemberRole, by_value=True, required=True)
