"""
Registry of live capabilities, one table per capability kind.

Mutations are applied copy-on-write: a batch builds new tables under the
registry lock and publishes them with a single reference swap. Readers
never take the lock and therefore see either none or all of a batch.
Change events are fired after the lock is released, so listeners (and
handlers) may mutate the registry again without deadlocking.
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from mcp_inject.errors import CapabilityNotFound, DescriptorConflict

from .descriptors import CapabilityDescriptor, CapabilityKind

logger = logging.getLogger(__name__)

Tables = Mapping[CapabilityKind, Mapping[str, CapabilityDescriptor]]


@dataclass(frozen=True)
class CapabilitiesChanged:
    """
    One "list changed" event for a single capability kind.

    Attributes:
        kind: Kind whose listing changed
        added: Names inserted or replaced by the batch
        removed: Names deleted by the batch
        vetoed: Handler names rejected by an inject filter in the same batch
    """

    kind: CapabilityKind
    added: Tuple[str, ...] = ()
    removed: Tuple[str, ...] = ()
    vetoed: Tuple[str, ...] = ()


ChangeListener = Callable[[CapabilitiesChanged], None]


def _empty_tables() -> Tables:
    return MappingProxyType({kind: MappingProxyType({}) for kind in CapabilityKind})


class CapabilityRegistry:
    """
    Thread-safe registry of capability descriptors.

    Lookups by (kind, name) are lock-free dictionary reads. ``add`` and
    ``remove`` accept whole batches and fire exactly one change event per
    affected kind.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: Tables = _empty_tables()
        self._listeners: Tuple[ChangeListener, ...] = ()

    # Reads

    def get(self, kind: CapabilityKind, name: str) -> Optional[CapabilityDescriptor]:
        """Return the descriptor registered under (kind, name), or None."""
        return self._tables[CapabilityKind(kind)].get(name)

    def require(self, kind: CapabilityKind, name: str) -> CapabilityDescriptor:
        """
        Return the descriptor registered under (kind, name).

        Raises:
            CapabilityNotFound: If nothing is registered under that key
        """
        descriptor = self.get(kind, name)
        if descriptor is None:
            raise CapabilityNotFound(CapabilityKind(kind), name)
        return descriptor

    def list(self, kind: CapabilityKind) -> List[CapabilityDescriptor]:
        """Descriptors of one kind, in registration order."""
        return list(self._tables[CapabilityKind(kind)].values())

    def names(self, kind: CapabilityKind) -> List[str]:
        return list(self._tables[CapabilityKind(kind)].keys())

    def snapshot(self) -> Tables:
        """Consistent read-only view of every table."""
        return self._tables

    def __contains__(self, key: Tuple[CapabilityKind, str]) -> bool:
        kind, name = key
        return self.get(kind, name) is not None

    def __len__(self) -> int:
        return sum(len(table) for table in self._tables.values())

    # Mutations

    def add(self, descriptors: Iterable[CapabilityDescriptor],
            vetoed: Iterable[Tuple[CapabilityKind, str]] = ()) -> List[CapabilitiesChanged]:
        """
        Register a batch of descriptors.

        A descriptor whose (kind, name) is already registered replaces the
        existing entry. Within one batch, the last descriptor for a key wins.

        Args:
            descriptors: Descriptors to register
            vetoed: (kind, handler name) pairs rejected by an inject filter
                while building this batch; reported on the change events

        Returns:
            The change events fired, one per affected kind
        """
        descriptors = list(descriptors)
        vetoed_by_kind: Dict[CapabilityKind, List[str]] = {}
        for kind, name in vetoed:
            vetoed_by_kind.setdefault(CapabilityKind(kind), []).append(name)

        with self._lock:
            tables = {kind: dict(table) for kind, table in self._tables.items()}
            added: Dict[CapabilityKind, List[str]] = {}

            for descriptor in descriptors:
                table = tables[descriptor.kind]
                if descriptor.name in table:
                    conflict = DescriptorConflict(descriptor.kind, descriptor.name)
                    logger.debug(f"{conflict}; replacing existing registration")
                table[descriptor.name] = descriptor
                names = added.setdefault(descriptor.kind, [])
                if descriptor.name not in names:
                    names.append(descriptor.name)

            if added:
                self._publish(tables)

        for kind, names in added.items():
            logger.info(f"Registered {len(names)} {kind}(s): {', '.join(names)}")

        events = [
            CapabilitiesChanged(
                kind=kind,
                added=tuple(added.get(kind, ())),
                vetoed=tuple(vetoed_by_kind.get(kind, ())),
            )
            for kind in CapabilityKind
            if kind in added or kind in vetoed_by_kind
        ]
        self._fire(events)
        return events

    def add_filtered(self, candidates: Iterable[CapabilityDescriptor],
                     predicate: Callable[[CapabilityDescriptor], bool]) -> List[CapabilitiesChanged]:
        """
        Register the candidates the predicate accepts, as one batch.

        Rejected candidates are logged and reported as ``vetoed`` on the
        change events.
        """
        accepted = []
        vetoed = []
        for descriptor in candidates:
            if predicate(descriptor):
                accepted.append(descriptor)
            else:
                logger.info(f"{descriptor.kind} '{descriptor.name}' was vetoed by the registration filter")
                vetoed.append(descriptor.key)
        return self.add(accepted, vetoed=vetoed)

    def remove(self, descriptors: Iterable[Union[CapabilityDescriptor, Tuple[CapabilityKind, str]]]
               ) -> List[CapabilitiesChanged]:
        """
        Unregister a batch of capabilities by name.

        Names that are not registered are ignored.

        Args:
            descriptors: Descriptors, or (kind, name) pairs, to remove

        Returns:
            The change events fired, one per kind that actually changed
        """
        keys = [
            item.key if isinstance(item, CapabilityDescriptor) else (CapabilityKind(item[0]), item[1])
            for item in descriptors
        ]

        with self._lock:
            tables = {kind: dict(table) for kind, table in self._tables.items()}
            removed: Dict[CapabilityKind, List[str]] = {}

            for kind, name in keys:
                if tables[kind].pop(name, None) is not None:
                    removed.setdefault(kind, []).append(name)

            if removed:
                self._publish(tables)

        for kind, names in removed.items():
            logger.info(f"Unregistered {len(names)} {kind}(s): {', '.join(names)}")

        events = [
            CapabilitiesChanged(kind=kind, removed=tuple(removed[kind]))
            for kind in CapabilityKind
            if kind in removed
        ]
        self._fire(events)
        return events

    def clear(self) -> List[CapabilitiesChanged]:
        """Remove every registered capability."""
        snapshot = self._tables
        return self.remove(
            (kind, name) for kind, table in snapshot.items() for name in table
        )

    # Change events

    def subscribe(self, listener: ChangeListener) -> None:
        """Receive a CapabilitiesChanged event after every applied batch."""
        with self._lock:
            if listener not in self._listeners:
                self._listeners = self._listeners + (listener,)

    def unsubscribe(self, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners = tuple(l for l in self._listeners if l != listener)

    def _publish(self, tables: Dict[CapabilityKind, Dict[str, CapabilityDescriptor]]) -> None:
        self._tables = MappingProxyType(
            {kind: MappingProxyType(table) for kind, table in tables.items()}
        )

    def _fire(self, events: List[CapabilitiesChanged]) -> None:
        listeners = self._listeners
        for event in events:
            for listener in listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception(f"Capability change listener {listener!r} failed")
