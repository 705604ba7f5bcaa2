"""
extensions.py — Flask extension singletons.

Creates SQLAlchemy and marshmallow as module-level objects (no app attached)
so they can be imported anywhere without circular imports. The app factory
calls init_app(app) on each.

    from sharedcart.app.extensions import db, ma

Services never touch `db.session` themselves: routes pass `db.session` in as
the explicit `session` argument.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

# Schema inheritance rule: validation schemas in app/schemas/ inherit from
# marshmallow.Schema directly, NOT ma.Schema. ma.Schema needs an active app
# context, and the unit tests instantiate schemas without one.
ma = Marshmallow()
