"""Site catalogue generator: sites, subsites (blocks) and zones (plots)."""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, field

from land_kpr.generators.base import BaseGenerator
from land_kpr.models import Site, Subsite, Zone


@dataclass
class SiteCatalog:
    """A generated site hierarchy."""

    sites: list[Site] = field(default_factory=list)
    subsites: list[Subsite] = field(default_factory=list)
    zones: list[Zone] = field(default_factory=list)

    def zones_of(self, subsite_id: str) -> list[Zone]:
        return [z for z in self.zones if z.subsite_id == subsite_id]


class SiteCatalogGenerator(BaseGenerator):
    """Generate housing-estate style site hierarchies."""

    ESTATE_PREFIXES = ["Griya", "Taman", "Bukit", "Villa", "Puri", "Graha", "Citra"]
    ESTATE_SUFFIXES = ["Asri", "Indah", "Permai", "Lestari", "Residence", "Harmoni"]

    def site_name(self) -> str:
        return (
            f"{random.choice(self.ESTATE_PREFIXES)} {self.fake.city()} "
            f"{random.choice(self.ESTATE_SUFFIXES)}"
        )

    def generate(
        self,
        sites: int = 2,
        subsites_per_site: int = 2,
        zones_per_subsite: int = 4,
    ) -> SiteCatalog:
        """Generate a catalogue.

        Parameters
        ----------
        sites : int
            Number of sites.
        subsites_per_site : int
            Blocks per site, named ``Blok A``, ``Blok B``, ...
        zones_per_subsite : int
            Plots per block, named ``Kavling A-01``, ...

        Returns
        -------
        SiteCatalog
            Generated hierarchy with stable, unique ids.
        """
        catalog = SiteCatalog()
        for _ in range(sites):
            site = Site(site_id=f"site_{self.fake.uuid4()[:8]}", name=self.site_name())
            catalog.sites.append(site)
            for block in string.ascii_uppercase[:subsites_per_site]:
                subsite = Subsite(
                    subsite_id=f"subsite_{self.fake.uuid4()[:8]}",
                    site_id=site.site_id,
                    name=f"Blok {block}",
                )
                catalog.subsites.append(subsite)
                for number in range(1, zones_per_subsite + 1):
                    catalog.zones.append(
                        Zone(
                            zone_id=f"zone_{self.fake.uuid4()[:8]}",
                            subsite_id=subsite.subsite_id,
                            name=f"Kavling {block}-{number:02d}",
                        )
                    )
        return catalog
