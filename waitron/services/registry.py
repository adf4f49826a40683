"""
State registry of machines in build mode.

Machines live in a single arena keyed by an internal identifier. The
hostname, MAC address and token maps only hold identifiers, and every
change to them goes through one critical section, so no reader can see one
index updated without the others.
"""

import itertools
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from waitron import metrics
from waitron.exceptions import NotBuildingError, RegistryError
from waitron.logging_config import token_prefix
from waitron.models import Machine

logger = structlog.get_logger()


class StateRegistry:
    """Concurrency-guarded store of active builds.

    All reads and writes serialize through one coarse lock.
    """

    def __init__(self, clock: Callable[[], float] = time.time, token_factory: Optional[Callable[[], str]] = None):
        self._lock = threading.Lock()
        self._clock = clock
        self._token_factory = token_factory or (lambda: str(uuid.uuid4()))
        self._ids = itertools.count(1)

        self._machines: Dict[int, Machine] = {}
        self._by_hostname: Dict[str, int] = {}
        self._by_mac: Dict[str, int] = {}
        self._by_token: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register(self, machine: Machine) -> Tuple[str, Optional[Machine]]:
        """Put a machine into build mode.

        Generates a fresh token and stamps the build start. A machine already
        registered under the same hostname is replaced and its token stops
        resolving.

        Returns:
            Tuple of (token, replaced machine or None)
        """
        with self._lock:
            token = self._token_factory()
            while token in self._by_token:
                token = self._token_factory()

            previous_id = self._by_hostname.get(machine.hostname)

            # A MAC may already be claimed by a different hostname's build
            for mac in machine.mac_addresses:
                other_id = self._by_mac.get(mac)
                if other_id is not None and other_id != previous_id:
                    raise RegistryError(
                        f"MAC {mac} of {machine.hostname} already belongs to "
                        f"{self._machines[other_id].hostname}",
                        message="MAC address already in build mode for another host",
                    )

            replaced = None
            if previous_id is not None:
                replaced = self._unlink(previous_id)

            machine.token = token
            machine.build_start = self._clock()
            machine.recovery_started = None

            machine_id = next(self._ids)
            self._machines[machine_id] = machine
            self._by_hostname[machine.hostname] = machine_id
            self._by_token[token] = machine_id
            for mac in machine.mac_addresses:
                self._by_mac[mac] = machine_id

            metrics.ACTIVE_BUILDS.set(len(self._machines))

        if replaced is not None:
            metrics.BUILDS_REPLACED.inc()
            logger.warning(
                "build_replaced",
                hostname=machine.hostname,
                abandoned_token=token_prefix(replaced.token),
            )
        return token, replaced

    def remove(self, token: str) -> Machine:
        """Take the machine registered under a token out of build mode.

        Raises:
            NotBuildingError: Token does not resolve
        """
        with self._lock:
            machine_id = self._by_token.get(token)
            if machine_id is None:
                raise NotBuildingError(f"Token {token_prefix(token)} is not registered")
            machine = self._unlink(machine_id)
            metrics.ACTIVE_BUILDS.set(len(self._machines))
        return machine

    def set_status(self, token: str, status: str, unless: Optional[str] = None) -> bool:
        """Set the status of the build holding a token.

        Args:
            token: Build token
            status: New status
            unless: Leave the status alone if it currently equals this value

        Returns:
            False if the token no longer resolves or the status was kept
        """
        with self._lock:
            machine_id = self._by_token.get(token)
            if machine_id is None:
                return False
            machine = self._machines[machine_id]
            if unless is not None and machine.status == unless:
                return False
            machine.status = status
            return True

    def collect_stale(self, now: Optional[float] = None) -> List[Machine]:
        """Claim every build that has run for at least its stale threshold.

        A claimed build is stamped with its recovery start, so a later sweep
        does not claim it again.
        """
        stale = []
        with self._lock:
            now = self._clock() if now is None else now
            for machine in self._machines.values():
                if machine.recovery_started is not None:
                    continue
                if now - machine.build_start >= machine.stale_build_threshold_seconds:
                    machine.recovery_started = now
                    stale.append(machine)
        return stale

    def _unlink(self, machine_id: int) -> Machine:
        # Caller holds the lock
        machine = self._machines.pop(machine_id, None)
        if machine is None:
            raise RegistryError(f"Index points at missing machine id {machine_id}")

        if self._by_hostname.get(machine.hostname) == machine_id:
            del self._by_hostname[machine.hostname]
        if self._by_token.get(machine.token) == machine_id:
            del self._by_token[machine.token]
        for mac in machine.mac_addresses:
            if self._by_mac.get(mac) == machine_id:
                del self._by_mac[mac]
        return machine

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get(self, index: Dict[str, int], key: str) -> Optional[Machine]:
        with self._lock:
            machine_id = index.get(key)
            if machine_id is None:
                return None
            machine = self._machines.get(machine_id)
            if machine is None:
                raise RegistryError(f"Index entry {key!r} points at missing machine id {machine_id}")
            return machine

    def lookup_by_token(self, token: str) -> Optional[Machine]:
        return self._get(self._by_token, token)

    def lookup_by_hostname(self, hostname: str) -> Optional[Machine]:
        return self._get(self._by_hostname, hostname)

    def lookup_by_mac(self, mac: str) -> Optional[Machine]:
        return self._get(self._by_mac, mac)

    def statuses(self) -> Dict[str, str]:
        """Hostname to build status for every machine in build mode."""
        with self._lock:
            return {m.hostname: m.status for m in self._machines.values()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._machines)
