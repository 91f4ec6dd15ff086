"""Site -> subsite -> zone catalogue maintenance."""

import logging

from land_kpr.engine.base import Service, clean, new_id, require_text
from land_kpr.exceptions import (
    ConflictError,
    DuplicateEntityError,
    EntityNotFoundError,
    ReferentialIntegrityError,
)
from land_kpr.models import Site, Subsite, Zone
from land_kpr.store.collections import BOOKINGS, SITES, SUBSITES, ZONES

logger = logging.getLogger(__name__)


class HierarchyService(Service):
    """Create, rename and delete sites, subsites and zones.

    Children must reference an existing parent and a parent cannot be
    deleted while children reference it. Deleting an unknown id is a
    successful no-op reporting ``False``.
    """

    # --- sites -----------------------------------------------------------

    def create_site(self, name: str, site_id: str | None = None) -> Site:
        name = require_text(name, "name is required")
        with self.store.write_set(SITES) as ws:
            site_id = clean(site_id) or new_id("site", self.now())
            if site_id in ws.collection(SITES):
                raise DuplicateEntityError("id already exists")
            site = Site(site_id=site_id, name=name)
            ws.put(SITES, site)
            ws.commit(self.now())
        logger.info("Created site %s", site_id)
        return site

    def update_site(self, site_id: str, name: str) -> Site:
        site_id = require_text(site_id, "invalid id")
        name = require_text(name, "name is required")
        with self.store.write_set(SITES) as ws:
            if site_id not in ws.collection(SITES):
                raise EntityNotFoundError("id not found")
            site = Site(site_id=site_id, name=name)
            ws.put(SITES, site)
            ws.commit(self.now())
        return site

    def delete_site(self, site_id: str) -> bool:
        site_id = require_text(site_id, "invalid id")
        with self.store.write_set(SITES, SUBSITES) as ws:
            for record in ws.records(SUBSITES).values():
                if isinstance(record, dict) and clean(record.get("site_id")) == site_id:
                    raise ConflictError("cannot delete site with subsites")
            if not ws.delete(SITES, site_id):
                return False
            ws.commit(self.now())
        logger.info("Deleted site %s", site_id)
        return True

    # --- subsites --------------------------------------------------------

    def _check_site(self, ws, site_id: str) -> None:
        if site_id not in ws.collection(SITES):
            raise ReferentialIntegrityError("site_id not found")

    def create_subsite(self, site_id: str, name: str, subsite_id: str | None = None) -> Subsite:
        site_id = require_text(site_id, "site_id is required")
        name = require_text(name, "name is required")
        with self.store.write_set(SITES, SUBSITES) as ws:
            self._check_site(ws, site_id)
            subsite_id = clean(subsite_id) or new_id("subsite", self.now())
            if subsite_id in ws.collection(SUBSITES):
                raise DuplicateEntityError("id already exists")
            subsite = Subsite(subsite_id=subsite_id, site_id=site_id, name=name)
            ws.put(SUBSITES, subsite)
            ws.commit(self.now())
        logger.info("Created subsite %s in site %s", subsite_id, site_id)
        return subsite

    def update_subsite(self, subsite_id: str, site_id: str, name: str) -> Subsite:
        subsite_id = require_text(subsite_id, "invalid id")
        site_id = require_text(site_id, "site_id is required")
        name = require_text(name, "name is required")
        with self.store.write_set(SITES, SUBSITES) as ws:
            if subsite_id not in ws.collection(SUBSITES):
                raise EntityNotFoundError("id not found")
            self._check_site(ws, site_id)
            subsite = Subsite(subsite_id=subsite_id, site_id=site_id, name=name)
            ws.put(SUBSITES, subsite)
            ws.commit(self.now())
        return subsite

    def delete_subsite(self, subsite_id: str) -> bool:
        subsite_id = require_text(subsite_id, "invalid id")
        with self.store.write_set(SUBSITES, ZONES) as ws:
            for record in ws.records(ZONES).values():
                if isinstance(record, dict) and clean(record.get("subsite_id")) == subsite_id:
                    raise ConflictError("cannot delete subsite with zones")
            if not ws.delete(SUBSITES, subsite_id):
                return False
            ws.commit(self.now())
        logger.info("Deleted subsite %s", subsite_id)
        return True

    # --- zones -----------------------------------------------------------

    def _check_subsite(self, ws, subsite_id: str) -> None:
        if subsite_id not in ws.collection(SUBSITES):
            raise ReferentialIntegrityError("subsite_id not found")

    def create_zone(self, subsite_id: str, name: str, zone_id: str | None = None) -> Zone:
        subsite_id = require_text(subsite_id, "subsite_id is required")
        name = require_text(name, "name is required")
        with self.store.write_set(SUBSITES, ZONES) as ws:
            self._check_subsite(ws, subsite_id)
            zone_id = clean(zone_id) or new_id("zone", self.now())
            if zone_id in ws.collection(ZONES):
                raise DuplicateEntityError("id already exists")
            zone = Zone(zone_id=zone_id, subsite_id=subsite_id, name=name)
            ws.put(ZONES, zone)
            ws.commit(self.now())
        logger.info("Created zone %s in subsite %s", zone_id, subsite_id)
        return zone

    def update_zone(self, zone_id: str, subsite_id: str, name: str) -> Zone:
        zone_id = require_text(zone_id, "invalid id")
        subsite_id = require_text(subsite_id, "subsite_id is required")
        name = require_text(name, "name is required")
        with self.store.write_set(SUBSITES, ZONES) as ws:
            if zone_id not in ws.collection(ZONES):
                raise EntityNotFoundError("id not found")
            self._check_subsite(ws, subsite_id)
            zone = Zone(zone_id=zone_id, subsite_id=subsite_id, name=name)
            ws.put(ZONES, zone)
            ws.commit(self.now())
        return zone

    def delete_zone(self, zone_id: str) -> bool:
        zone_id = require_text(zone_id, "invalid id")
        with self.store.write_set(ZONES, BOOKINGS) as ws:
            for record in ws.records(BOOKINGS).values():
                if isinstance(record, dict) and clean(record.get("zone_id")) == zone_id:
                    raise ConflictError("cannot delete zone with bookings")
            if not ws.delete(ZONES, zone_id):
                return False
            ws.commit(self.now())
        logger.info("Deleted zone %s", zone_id)
        return True

    # --- reads -----------------------------------------------------------

    def list_sites(self) -> list[Site]:
        return sorted(self.store.get_entities(SITES).values(), key=lambda s: s.site_id)

    def list_subsites(self, site_id: str | None = None) -> list[Subsite]:
        subsites = self.store.get_entities(SUBSITES).values()
        if site_id:
            subsites = [s for s in subsites if s.site_id == site_id]
        return sorted(subsites, key=lambda s: s.subsite_id)

    def list_zones(self, subsite_id: str | None = None) -> list[Zone]:
        zones = self.store.get_entities(ZONES).values()
        if subsite_id:
            zones = [z for z in zones if z.subsite_id == subsite_id]
        return sorted(zones, key=lambda z: z.zone_id)
