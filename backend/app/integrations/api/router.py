from __future__ import annotations

import logging
import threading
from typing import List, Optional

import requests
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..domain.models import Integration, Manifest
from ..domain.package import PackageIdentity
from ..errors import (
    AlreadyInstalledError,
    ArchiveError,
    AuthorizationRequiredError,
    BadIdentityError,
    IntegrationError,
    InvalidPolicyOptionsError,
    ManifestDecodeError,
    RemoteDecodeError,
    RemoteFetchFailedError,
    UnknownLocationFlagError,
    UnsafeExecutablePathError,
)
from ..services.manager import IntegrationManager, QueryOptions
from ..services.policy import AddOptions, RemoveOptions

logger = logging.getLogger("integrations.api.router")

router = APIRouter()

# store operations assume a single caller at a time
_MUTATION_LOCK = threading.Lock()


# ----------------------------
# Request / response models
# ----------------------------

class InstallRequest(BaseModel):
    target: str
    version: str = ""
    upgrade: bool = False
    downgrade: bool = False
    replace: bool = False
    allow_multiple_versions: bool = False
    implicit_fetch: bool = True


class UninstallRequest(BaseModel):
    target: str = ""
    all: bool = False


class InstalledResponse(BaseModel):
    packages: List[PackageIdentity] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class InstallResponse(BaseModel):
    status: str
    package: PackageIdentity


class UninstallResponse(BaseModel):
    status: str
    removed: List[PackageIdentity] = Field(default_factory=list)


class ReloadResponse(BaseModel):
    reloaded: int


# ----------------------------
# Dependencies
# ----------------------------

def get_manager(request: Request) -> IntegrationManager:
    manager = getattr(request.app.state, "integration_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Integration manager not initialized")
    return manager


def _http_error(e: Exception) -> HTTPException:
    if isinstance(
        e,
        (
            InvalidPolicyOptionsError,
            BadIdentityError,
            ManifestDecodeError,
            UnsafeExecutablePathError,
            UnknownLocationFlagError,
            ArchiveError,
        ),
    ):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, AuthorizationRequiredError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, AlreadyInstalledError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (RemoteFetchFailedError, RemoteDecodeError, requests.RequestException)):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, FileNotFoundError):
        return HTTPException(status_code=404, detail=str(e))

    logger.exception("Unexpected integration error")
    return HTTPException(status_code=500, detail=str(e))


# ----------------------------
# Endpoints
# ----------------------------

@router.get("/installed", response_model=InstalledResponse)
def list_installed(manager: IntegrationManager = Depends(get_manager)) -> InstalledResponse:
    out = InstalledResponse()
    for pkg, err in manager.list_installed():
        if err is not None:
            out.errors.append(str(err))
        else:
            out.packages.append(pkg)
    return out


@router.get("/installed/{name}/{version}", response_model=Manifest)
def get_installed_manifest(
    name: str,
    version: str,
    manager: IntegrationManager = Depends(get_manager),
) -> Manifest:
    try:
        identity = PackageIdentity(
            name=name, version=version, os=manager.platform.os, arch=manager.platform.arch
        )
        return manager.store.manifest(identity)
    except (IntegrationError, OSError) as e:
        raise _http_error(e)


@router.get("/catalog", response_model=List[Integration])
def query_catalog(
    type: Optional[str] = Query(default=None, description="storage, source or destination"),
    tag: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None, description="installed or not-installed"),
    only_local: bool = Query(default=False),
    manager: IntegrationManager = Depends(get_manager),
) -> List[Integration]:
    logger.info("GET /catalog type=%s tag=%s status=%s only_local=%s", type, tag, status, only_local)
    opts = QueryOptions(type=type or "", tag=tag or "", status=status or "", only_local=only_local)
    try:
        return manager.query(opts)
    except (IntegrationError, OSError, requests.RequestException, ValueError) as e:
        raise _http_error(e)


@router.post("/install", response_model=InstallResponse)
def install(req: InstallRequest, manager: IntegrationManager = Depends(get_manager)) -> InstallResponse:
    logger.info("POST /install target=%s", req.target)
    opts = AddOptions(**req.model_dump(exclude={"target"}))
    try:
        with _MUTATION_LOCK:
            identity = manager.add(req.target, opts)
    except (IntegrationError, OSError, requests.RequestException) as e:
        logger.warning("Install of %s failed: %s", req.target, e)
        raise _http_error(e)
    return InstallResponse(status="installed", package=identity)


@router.post("/uninstall", response_model=UninstallResponse)
def uninstall(req: UninstallRequest, manager: IntegrationManager = Depends(get_manager)) -> UninstallResponse:
    logger.info("POST /uninstall target=%s all=%s", req.target, req.all)
    try:
        with _MUTATION_LOCK:
            removed = manager.remove(req.target, RemoveOptions(all=req.all))
    except (IntegrationError, OSError) as e:
        logger.warning("Uninstall of %s failed: %s", req.target, e)
        raise _http_error(e)
    return UninstallResponse(status="uninstalled", removed=removed)


@router.post("/reload", response_model=ReloadResponse)
def reload(manager: IntegrationManager = Depends(get_manager)) -> ReloadResponse:
    try:
        with _MUTATION_LOCK:
            count = manager.store.reload_all()
    except (IntegrationError, OSError) as e:
        raise _http_error(e)
    return ReloadResponse(reloaded=count)
