from __future__ import annotations

import logging
import os
import posixpath
from typing import Dict, Iterator, List, Optional

import yaml
from pydantic import BaseModel, ValidationError

from ..domain.models import (
    PLUGIN_API_VERSION,
    Integration,
    IntegrationIndex,
    IntegrationInstallation,
    Platform,
    Recipe,
)
from ..domain.package import PackageIdentity
from ..errors import BadIdentityError, RemoteDecodeError
from ..store.flat import FlatStore, ListEntry
from .fetcher import Fetcher
from .policy import AddOptions, RemoveOptions, check_options, resolve_version_policy

logger = logging.getLogger("integrations.services.manager")

# Integration.types attribute checked for each supported query type.
QUERY_TYPES = ("storage", "source", "destination")


class QueryOptions(BaseModel):
    type: str = ""
    tag: str = ""
    status: str = ""
    only_local: bool = False


class IntegrationManager:
    """
    Installs, removes and lists integrations.

    Local archives are installed straight from disk; bare names are
    resolved through the repository (recipe, then binary).
    """

    def __init__(
        self,
        store: FlatStore,
        fetcher: Fetcher,
        *,
        platform: Platform,
        install_url: str = "",
        api_url: str = "",
        binary_needs_auth: bool = False,
    ):
        self.store = store
        self.fetcher = fetcher
        self.platform = platform
        self.install_url = install_url
        self.api_url = api_url
        self.binary_needs_auth = binary_needs_auth

    # ----------------------------
    # Listing
    # ----------------------------

    def list_installed(self) -> Iterator[ListEntry]:
        return self.store.list_packages("")

    # ----------------------------
    # Add
    # ----------------------------

    def add(self, target: str, opts: Optional[AddOptions] = None) -> PackageIdentity:
        """
        Install `target`, either a path to a package archive or, with
        implicit_fetch, a bare integration name.

        By default this fails if another version of the same integration
        is already installed.
        """
        opts = opts or AddOptions()
        check_options(opts)

        base = os.path.basename(target)

        if opts.implicit_fetch and not base.endswith(self.store.suffix):
            if opts.version:
                name, version = base, opts.version
            else:
                recipe = self.fetch_recipe(base)
                name, version = recipe.name, recipe.version

            identity = PackageIdentity(
                name=name, version=version, os=self.platform.os, arch=self.platform.arch
            )
            self._preadd(identity, opts)
            self._fetch_binary(identity)
            return identity

        identity = PackageIdentity.parse(base, self.store.suffix)
        self._preadd(identity, opts)

        logger.info("Installing %s from %s", identity, target)
        with open(target, "rb") as fp:
            self.store.stage(identity, fp)
        return identity

    def _preadd(self, identity: PackageIdentity, opts: AddOptions) -> None:
        to_evict = resolve_version_policy(
            identity.name,
            identity.version,
            self.store.list_packages(identity.name),
            opts,
        )
        for pkg in to_evict:
            self.store.evict(pkg)

    def fetch_recipe(self, name: str) -> Recipe:
        endpoint = posixpath.join("kloset/recipe", PLUGIN_API_VERSION, name) + ".yaml"
        resp = self.fetcher.get(self.install_url, endpoint)
        try:
            raw = yaml.safe_load(resp.content)
        except yaml.YAMLError as e:
            raise RemoteDecodeError(resp.url, "recipe", str(e)) from e
        finally:
            resp.close()

        try:
            return Recipe.model_validate(raw or {})
        except ValidationError as e:
            raise RemoteDecodeError(resp.url, "recipe", str(e)) from e

    def _fetch_binary(self, identity: PackageIdentity) -> None:
        endpoint = posixpath.join("kloset/pkg", PLUGIN_API_VERSION, identity.filename(self.store.suffix))
        logger.info("Fetching %s from the repository", identity)
        resp = self.fetcher.get(self.install_url, endpoint, auth=self.binary_needs_auth, stream=True)
        try:
            resp.raw.decode_content = True
            self.store.stage(identity, resp.raw)
        finally:
            resp.close()

    # ----------------------------
    # Remove
    # ----------------------------

    def remove(self, target: str, opts: Optional[RemoveOptions] = None) -> List[PackageIdentity]:
        """Uninstall every installed package matching `target`."""
        opts = opts or RemoveOptions()

        if not opts.all and target == "":
            raise BadIdentityError(target, "empty name", field="name")

        # collect first so eviction doesn't race the directory scan
        matches: list[PackageIdentity] = []
        for pkg, err in self.store.list_packages(target):
            if err is not None:
                raise err
            matches.append(pkg)

        for pkg in matches:
            self.store.evict(pkg)
        logger.info("Removed %d package(s) for %r", len(matches), target or "*")
        return matches

    # ----------------------------
    # Query
    # ----------------------------

    def query(self, opts: Optional[QueryOptions] = None) -> List[Integration]:
        opts = opts or QueryOptions()

        # Locally we only know name and version; the rest comes from the
        # catalog API.
        packages: Dict[str, Integration] = {}
        for pkg, err in self.list_installed():
            if err is not None:
                raise err
            packages[pkg.name] = Integration(
                id=pkg.name,
                name=pkg.name,
                display_name=pkg.name,
                api_version=PLUGIN_API_VERSION,
                installation=IntegrationInstallation(status="installed", version=pkg.version),
            )

        if not opts.only_local:
            for plug in self.fetch_index().integrations:
                local = packages.get(plug.id)
                if local is not None:
                    local.id = plug.id
                    local.display_name = plug.display_name
                    local.description = plug.description
                    local.homepage = plug.homepage
                    local.repository = plug.repository
                    local.license = plug.license
                    local.tags = plug.tags
                    local.latest_version = plug.latest_version
                    local.stage = plug.stage
                    local.types = plug.types
                    local.documentation = plug.documentation
                    local.icon = plug.icon
                    local.featured = plug.featured
                    local.installation.available = True
                else:
                    plug.installation = IntegrationInstallation(status="not-installed", available=True)
                    packages[plug.id] = plug

        ret: list[Integration] = []
        for plug in packages.values():
            if opts.type in QUERY_TYPES and not getattr(plug.types, opts.type):
                continue
            if opts.tag and opts.tag not in plug.tags:
                continue
            if opts.status and opts.status != plug.installation.status:
                continue
            ret.append(plug)

        ret.sort(key=lambda p: p.name)
        return ret

    def fetch_index(self) -> IntegrationIndex:
        endpoint = "v1/integrations/" + PLUGIN_API_VERSION + ".json"
        resp = self.fetcher.get(self.api_url, endpoint)
        try:
            raw = resp.json()
        except ValueError as e:
            raise RemoteDecodeError(resp.url, "catalog index", str(e)) from e
        finally:
            resp.close()

        try:
            return IntegrationIndex.model_validate(raw)
        except ValidationError as e:
            raise RemoteDecodeError(resp.url, "catalog index", str(e)) from e
