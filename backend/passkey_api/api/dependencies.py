from fastapi import Request

from ..core.config import Settings
from ..db.database import Database
from ..services.ceremony_coordinator import CeremonyCoordinator
from ..services.credential_store import CredentialStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_coordinator(request: Request) -> CeremonyCoordinator:
    return request.app.state.coordinator


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.coordinator.credential_store
