"""Service container wiring storage, auth and the handle cache together."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from ..auth.service import AuthService
from ..config.schema import RuntimeConfig
from ..handles import HandleCache
from ..storage import Database
from ..utils.logging import get_logger

LOGGER = get_logger("webmail.maintenance")


@dataclass
class Services:
    """Long-lived collaborators shared by every request."""

    config: RuntimeConfig
    database: Database
    auth: AuthService
    handles: HandleCache

    def close(self) -> None:
        self.handles.close_all()
        self.database.dispose()


def build_services(config: RuntimeConfig) -> Services:
    """Create the database schema and the services backed by it."""

    database = Database(config.database.url, echo=config.database.echo)
    database.create_all()
    auth = AuthService(database, auth=config.auth, mail=config.mail)
    handles = HandleCache(
        auth.get_credentials,
        max_handles=config.cache.max_handles,
        idle_timeout_s=config.cache.idle_timeout_s,
    )
    auth.handles = handles
    return Services(config=config, database=database, auth=auth, handles=handles)


def run_maintenance(services: Services) -> Dict[str, int]:
    """Purge expired sessions and disconnect idle mail handles."""

    purged = services.auth.purge_expired_sessions()
    reaped = services.handles.reap_idle()
    LOGGER.info("maintenance_sweep", sessions_purged=purged, handles_reaped=reaped)
    return {"sessions_purged": purged, "handles_reaped": reaped}
