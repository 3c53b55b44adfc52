"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

import firebase_admin
from firebase_admin import credentials, firestore

from image_pipeline.providers import build_default_providers
from image_pipeline.storage import CosImageStorage, ImageStorage, InlineImageStorage
from image_pipeline.supply_chain import ImageSupplyChain
from moments.auth import FirebaseAuthenticator, IdentityGate, InMemoryAuthenticator
from moments.config import get_settings
from moments.orchestrator import DailyViewSession
from moments.sessions import SessionRegistry
from moments.store import FirestoreRecordStore, InMemoryRecordStore, RecordStore
from shared.constants import ALLOWED_USERS
from shared.types import User

logger = logging.getLogger(__name__)

_record_store: RecordStore | None = None
_identity_gate: IdentityGate | None = None
_image_supply: ImageSupplyChain | None = None
_session_registry: SessionRegistry | None = None


def _ensure_firebase_app() -> None:
    try:
        firebase_admin.get_app()
    except ValueError:
        settings = get_settings()
        options = {}
        if settings.firebase_project_id:
            options["projectId"] = settings.firebase_project_id
        if settings.google_application_credentials:
            cred = credentials.Certificate(settings.google_application_credentials)
            firebase_admin.initialize_app(cred, options or None)
        else:
            firebase_admin.initialize_app(options=options or None)


def get_record_store() -> RecordStore:
    """
    Return a singleton record store so every session sees the same data.
    """
    global _record_store
    if _record_store:
        return _record_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _record_store = InMemoryRecordStore()
    else:
        _ensure_firebase_app()
        _record_store = FirestoreRecordStore(firestore.client())
    return _record_store


def get_identity_gate() -> IdentityGate:
    global _identity_gate
    if _identity_gate:
        return _identity_gate

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.firebase_web_api_key:
        if not settings.dev_login_password:
            logger.warning("DEV_LOGIN_PASSWORD is not set; every sign-in will fail")
        passwords = {}
        if settings.dev_login_password:
            passwords = {
                entry.email: settings.dev_login_password for entry in ALLOWED_USERS
            }
        authenticator = InMemoryAuthenticator(passwords=passwords)
    else:
        authenticator = FirebaseAuthenticator(api_key=settings.firebase_web_api_key)
    _identity_gate = IdentityGate(authenticator)
    return _identity_gate


def _image_storage() -> ImageStorage:
    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cos_bucket:
        return InlineImageStorage()
    return CosImageStorage(
        bucket=settings.cos_bucket,
        region=settings.cos_region or "",
        endpoint=settings.cos_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
        public_base_url=settings.cos_public_base_url or "",
    )


def get_image_supply() -> ImageSupplyChain:
    global _image_supply
    if _image_supply:
        return _image_supply

    settings = get_settings()
    _image_supply = ImageSupplyChain(
        providers=build_default_providers(
            pexels_api_key=settings.pexels_api_key,
            pixabay_api_key=settings.pixabay_api_key,
            timeout=settings.provider_timeout_seconds,
            gemini_api_key=settings.gemini_api_key,
        ),
        storage=_image_storage(),
        max_dimension=settings.image_max_dimension,
        quality=settings.image_quality,
    )
    return _image_supply


def local_today() -> date:
    """Today's calendar date in the configured timezone."""
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def _new_session(user: User) -> DailyViewSession:
    return DailyViewSession(
        user=user,
        store=get_record_store(),
        images=get_image_supply(),
        clock=local_today,
        creation_timeout=get_settings().creation_timeout_seconds,
    )


def get_session_registry() -> SessionRegistry:
    global _session_registry
    if _session_registry:
        return _session_registry
    _session_registry = SessionRegistry(_new_session)
    return _session_registry
