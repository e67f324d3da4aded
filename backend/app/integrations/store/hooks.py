# backend/app/integrations/store/hooks.py
from __future__ import annotations

from pathlib import Path

from ..domain.models import Manifest
from ..domain.package import PackageIdentity


class StoreHooks:
    """
    Host-side callbacks around the store lifecycle.

    Subclass and override what you need; every hook defaults to a no-op.

    - pre_commit: raise to veto an installation (bad api_version, policy...).
      Runs after the manifest is validated and before the package becomes
      visible. Not called when the extraction cache is rehydrated.
    - post_commit: register a package that is now available, either freshly
      installed or rehydrated at startup. Cannot unwind the install.
    - post_evict: deregister a package that was removed.
    """

    def pre_commit(self, manifest: Manifest) -> None:
        return None

    def post_commit(self, manifest: Manifest, identity: PackageIdentity, extracted: Path) -> None:
        return None

    def post_evict(self, identity: PackageIdentity) -> None:
        return None
