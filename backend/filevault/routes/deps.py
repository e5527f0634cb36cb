"""Dependency wiring for the route layer.

Components are built from Settings here and nowhere else; tests swap them
through app.dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends, Request

from filevault.config import Settings, settings
from filevault.services.file_storage import FileStorageService
from filevault.services.ingestion import IngestionService
from filevault.services.notifier import OwnerNotifier, SmtpNotifier
from filevault.services.owner import VerifiedIdentity
from filevault.services.retrieval import RetrievalService


def get_settings() -> Settings:
    return settings


@lru_cache
def _storage_for(root: str, url_prefix: str) -> FileStorageService:
    return FileStorageService(root, url_prefix)


def get_storage(cfg: Settings = Depends(get_settings)) -> FileStorageService:
    return _storage_for(cfg.FILE_STORAGE_PATH, cfg.PUBLIC_FILES_PREFIX)


def get_notifier(cfg: Settings = Depends(get_settings)) -> OwnerNotifier:
    if cfg.SMTP_HOST:
        return SmtpNotifier(
            host=cfg.SMTP_HOST,
            port=cfg.SMTP_PORT,
            username=cfg.SMTP_USER,
            password=cfg.SMTP_PASSWORD,
            sender=cfg.SMTP_FROM,
        )
    return OwnerNotifier()


def get_ingestion(
    cfg: Settings = Depends(get_settings),
    storage: FileStorageService = Depends(get_storage),
    notifier: OwnerNotifier = Depends(get_notifier),
) -> IngestionService:
    return IngestionService(
        storage,
        notifier=notifier,
        max_upload_size=cfg.MAX_UPLOAD_SIZE,
        allow_anonymous=cfg.ALLOW_ANONYMOUS_UPLOADS,
    )


def get_retrieval(
    cfg: Settings = Depends(get_settings),
    storage: FileStorageService = Depends(get_storage),
) -> RetrievalService:
    return RetrievalService(storage, api_prefix=cfg.API_PREFIX)


def get_verified_identity(request: Request) -> VerifiedIdentity | None:
    """Identity established by the upstream auth layer, if any."""
    identity = getattr(request.state, "identity", None)
    return identity if isinstance(identity, VerifiedIdentity) else None
