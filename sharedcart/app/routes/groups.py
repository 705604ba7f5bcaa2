"""
routes/groups.py — Group and membership route handlers.

Parse, validate, call ONE service, commit, return envelope. No business
logic, no DB queries.

Endpoints (url_prefix=/api/v1/groups):
  POST   /                         → 201  create group (caller becomes admin)
  GET    /                         → 200  list caller's groups
  GET    /:id                      → 200  group + members
  PATCH  /:id                      → 200  update name/description (admin)
  DELETE /:id                      → 200  soft-delete group (admin)
  GET    /:id/members              → 200  member list
  POST   /:id/members              → 201  add member by email (admin)
  DELETE /:id/members/:uid         → 200  remove member (admin or self)
  PUT    /:id/members/:uid/role    → 200  change role (admin)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from sharedcart.app.extensions import db
from sharedcart.app.middleware.auth_middleware import require_auth
from sharedcart.app.schemas.group_schema import (
    AddMemberSchema,
    CreateGroupSchema,
    UpdateGroupSchema,
    UpdateMemberRoleSchema,
)
from sharedcart.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        name=data["name"],
        description=data["description"],
        creator_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Caller must be a member."""
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: int):
    data = UpdateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.update_group(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Soft delete; bills and settlements stay for audit."""
    group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"deleted": True, "group_id": group_id}, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members", methods=["GET"])
@require_auth
def list_members(group_id: int):
    result = group_service.get_group_members(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_auth
def add_member(group_id: int):
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    result = group_service.add_member(
        group_id=group_id,
        caller_id=g.user_id,
        email=data["email"],
        role=data["role"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/members/<int:user_id>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, user_id: int):
    group_service.remove_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"removed": True, "group_id": group_id, "user_id": user_id},
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/members/<int:user_id>/role", methods=["PUT"])
@require_auth
def update_member_role(group_id: int, user_id: int):
    data = UpdateMemberRoleSchema().load(request.get_json(force=True) or {})
    result = group_service.update_member_role(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=user_id,
        role=data["role"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
