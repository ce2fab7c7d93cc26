"""Cache invalidation signals.

Routers call ``revalidate`` after every mutation with the tags whose cached
reads are now stale. The cache itself lives outside this service; anything
that needs the signals subscribes with ``add_listener``.
"""
import enum
import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class CacheTag(str, enum.Enum):
    FORMS = "forms"
    FORM = "form"
    PUBLIC_FORM = "public-form"
    FORM_FIELDS = "form-fields"
    FORM_RESPONSES = "form-responses"
    ROLES = "roles"
    ROLE = "role"
    ROLE_PERMISSIONS = "role-permissions"
    PERMISSIONS = "permissions"
    PERMISSION = "permission"
    DASHBOARDS = "dashboards"
    DASHBOARD = "dashboard"


Listener = Callable[[CacheTag], None]
_listeners: List[Listener] = []


def add_listener(listener: Listener) -> None:
    _listeners.append(listener)


def remove_listener(listener: Listener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def revalidate(*tags: CacheTag) -> None:
    for tag in tags:
        logger.debug("Revalidating cache tag", extra={"tag": tag.value})
        for listener in list(_listeners):
            try:
                listener(tag)
            except Exception:
                # the mutation has already committed
                logger.exception("Cache listener failed for tag %s", tag.value)
