"""Backend registry -- discovery, lookup, and execution order.

:class:`BackendRegistry` always knows the built-in backends. Third-party
packages can replace a built-in by declaring an entry point in the
``shipyard.backends`` group that points at a
:class:`~shipyard.bundler.base.Backend` subclass::

    [project.entry-points."shipyard.backends"]
    signed-msi = "my_package.backends:SignedMsiBackend"

The registry also turns a set of requested targets into an ordered plan
that honours each backend's ``requires``.
"""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Iterable

from shipyard.bundler.base import Backend
from shipyard.bundler.linux import AppImageBackend, DebBackend
from shipyard.bundler.macos import AppBackend, DmgBackend
from shipyard.bundler.windows import MsiBackend, NsisBackend
from shipyard.exceptions import PackagingError
from shipyard.models import BundleTarget

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "shipyard.backends"
"""The entry-point group name used for backend discovery."""

BUILTIN_BACKENDS: tuple[type[Backend], ...] = (
    AppBackend,
    DmgBackend,
    DebBackend,
    AppImageBackend,
    MsiBackend,
    NsisBackend,
)

# Execution order when no requirement forces otherwise.
_ORDER = [backend.target for backend in BUILTIN_BACKENDS]


class BackendRegistry:
    """Maps each :class:`~shipyard.models.BundleTarget` to a backend.

    Example::

        registry = BackendRegistry()
        registry.discover()
        for target in registry.plan({BundleTarget.DMG}):
            artifacts = registry.get(target).bundle(ctx)
    """

    def __init__(self) -> None:
        self._backends: dict[BundleTarget, type[Backend]] = {}
        for backend in BUILTIN_BACKENDS:
            self.register(backend)

    def register(self, backend: type[Backend]) -> None:
        """Register *backend* for its target, replacing any previous one.

        Raises:
            PackagingError: If *backend* is not a :class:`Backend` subclass
                with a valid ``target``.
        """
        if not (isinstance(backend, type) and issubclass(backend, Backend)):
            raise PackagingError(f"{backend!r} is not a Backend subclass")
        target = getattr(backend, "target", None)
        if not isinstance(target, BundleTarget):
            raise PackagingError(f"{backend.__name__} does not declare a bundle target")
        previous = self._backends.get(target)
        if previous is not None and previous is not backend:
            logger.info(
                "Backend %s replaces %s for %s", backend.__name__, previous.__name__, target.value
            )
        self._backends[target] = backend

    def discover(self) -> list[str]:
        """Load backends registered under the ``shipyard.backends`` entry-point group.

        Returns:
            Names of the entry points that loaded. Broken entry points are
            logged as warnings and skipped so built-ins keep working.
        """
        loaded: list[str] = []
        for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            try:
                self.register(ep.load())
                loaded.append(ep.name)
            except Exception as exc:
                logger.warning("Failed to load backend '%s': %s", ep.name, exc)
        return loaded

    def get(self, target: BundleTarget) -> Backend:
        """Return a fresh backend instance for *target*.

        Raises:
            PackagingError: If no backend handles *target*.
        """
        try:
            return self._backends[target]()
        except KeyError:
            raise PackagingError(f"No backend registered for target '{target.value}'") from None

    def plan(self, targets: Iterable[BundleTarget]) -> list[BundleTarget]:
        """Order *targets*, adding required targets before their dependents.

        ``{Dmg}`` becomes ``[App, Dmg]``; independent targets keep the
        built-in order (App, Dmg, Deb, AppImage, Msi, Nsis).
        """
        ordered: list[BundleTarget] = []
        visiting: set[BundleTarget] = set()

        def visit(target: BundleTarget) -> None:
            if target in ordered:
                return
            if target in visiting:
                raise PackagingError(f"Circular backend requirement involving '{target.value}'")
            visiting.add(target)
            backend = self._backends.get(target)
            for required in backend.requires if backend else ():
                visit(required)
            visiting.discard(target)
            ordered.append(target)

        for target in sorted(set(targets), key=_sort_key):
            visit(target)
        return ordered


def _sort_key(target: BundleTarget) -> int:
    return _ORDER.index(target) if target in _ORDER else len(_ORDER)
