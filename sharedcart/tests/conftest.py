"""
Shared test setup.

Importing every model module registers all mapped classes, so unit tests
can instantiate ORM objects (which configures relationships by name)
without building an app.
"""

from sharedcart.app.models import (  # noqa: F401
    bill,
    group,
    membership,
    refresh_token,
    settlement,
    user,
)
