"""Locate the command characteristic on a freshly connected peripheral."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from curtaincall.core.device_match import uuid_matches
from curtaincall.core.model import CharacteristicInfo, Endpoint, ServiceInfo

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pending:
    """Resolution still waiting for characteristic reports."""


@dataclass(frozen=True)
class Found:
    endpoint: Endpoint


@dataclass(frozen=True)
class NotWritable:
    endpoint: Endpoint


@dataclass(frozen=True)
class NotFound:
    services: tuple[ServiceInfo, ...]


Outcome = Pending | Found | NotWritable | NotFound

PENDING = Pending()


class EndpointResolver:
    """Walks the full service tree looking for one characteristic.

    Services are not filtered because HC-08 style modules often advertise no
    service UUIDs. Reports may arrive in any order and are tracked by
    service handle, since one UUID can appear on several services.
    ``NotFound`` is only returned once every reported service has delivered
    its characteristics.
    The first match is latched and later reports are ignored.
    """

    def __init__(self, characteristic_uuid: str) -> None:
        self.characteristic_uuid = characteristic_uuid
        self._services: tuple[ServiceInfo, ...] = ()
        self._outstanding: set[int] = set()
        self._outcome: Outcome | None = None

    @property
    def outcome(self) -> Outcome | None:
        return self._outcome

    def reset(self) -> None:
        self._services = ()
        self._outstanding = set()
        self._outcome = None

    def services_reported(self, services: tuple[ServiceInfo, ...]) -> Outcome:
        """Record the discovered services. Each entry of ``outstanding`` still needs a query."""
        self._services = tuple(services)
        self._outstanding = {s.handle for s in services}
        if not self._outstanding:
            self._outcome = NotFound(services=())
            return self._outcome
        return PENDING

    @property
    def outstanding(self) -> tuple[ServiceInfo, ...]:
        return tuple(s for s in self._services if s.handle in self._outstanding)

    def characteristics_reported(
        self,
        service: ServiceInfo,
        characteristics: tuple[CharacteristicInfo, ...],
    ) -> Outcome:
        if self._outcome is not None:
            return self._outcome
        self._outstanding.discard(service.handle)

        for info in characteristics:
            LOGGER.debug("Service %s: found characteristic %s %s", service.uuid, info.uuid, sorted(info.properties))
            if not uuid_matches(info.uuid, self.characteristic_uuid):
                continue
            if info.service_uuid is None:
                info = CharacteristicInfo(
                    uuid=info.uuid,
                    properties=info.properties,
                    handle=info.handle,
                    service_uuid=service.uuid,
                )
            endpoint = Endpoint.from_characteristic(info)
            LOGGER.info(
                "Found %s: write=%s write-without-response=%s read=%s notify=%s",
                self.characteristic_uuid.upper(),
                endpoint.writes_with_response,
                endpoint.writes_without_response,
                endpoint.readable,
                endpoint.notifiable,
            )
            self._outcome = Found(endpoint) if endpoint.writable else NotWritable(endpoint)
            return self._outcome

        if not self._outstanding:
            self._outcome = NotFound(services=self._services)
            return self._outcome
        return PENDING
