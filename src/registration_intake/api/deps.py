from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from registration_intake.app.settings import AppSettings, UploadSettings, get_app_settings, get_upload_settings
from registration_intake.db.integration import UoWDep
from registration_intake.files.retrieval import FileRetrievalService
from registration_intake.registrations.repository import RegistrationRepository
from registration_intake.registrations.service import RegistrationService
from registration_intake.uploads.pipeline import UploadPipeline

from .ratelimit import client_key


def get_upload_config(request: Request) -> UploadSettings:
    return getattr(request.app.state, "upload_settings", None) or get_upload_settings()


def get_app_config(request: Request) -> AppSettings:
    return getattr(request.app.state, "app_settings", None) or get_app_settings()


UploadSettingsDep = Annotated[UploadSettings, Depends(get_upload_config)]
AppSettingsDep = Annotated[AppSettings, Depends(get_app_config)]


def get_pipeline(upload: UploadSettingsDep) -> UploadPipeline:
    return UploadPipeline(upload.path)


def get_registration_service(uow: UoWDep) -> RegistrationService:
    return RegistrationService(uow)


def get_registration_repo(uow: UoWDep) -> RegistrationRepository:
    assert uow.session is not None
    return RegistrationRepository(uow.session)


def get_file_service(
    request: Request, uow: UoWDep, upload: UploadSettingsDep, app_settings: AppSettingsDep
) -> FileRetrievalService:
    # View links are absolute; without a configured base they follow the request host.
    base_url = app_settings.public_base_url or str(request.base_url)
    return FileRetrievalService(uow, upload.path, public_base_url=base_url)


def client_ip(request: Request) -> str | None:
    ip = client_key(request)
    return None if ip == "unknown" else ip


PipelineDep = Annotated[UploadPipeline, Depends(get_pipeline)]
RegistrationServiceDep = Annotated[RegistrationService, Depends(get_registration_service)]
RegistrationRepoDep = Annotated[RegistrationRepository, Depends(get_registration_repo)]
FileServiceDep = Annotated[FileRetrievalService, Depends(get_file_service)]
