"""Site hierarchy models: site -> subsite -> zone."""

from dataclasses import dataclass


@dataclass
class Site:
    """Top-level land development site."""

    site_id: str
    name: str


@dataclass
class Subsite:
    """Block or cluster inside a site."""

    subsite_id: str
    site_id: str
    name: str


@dataclass
class Zone:
    """Bookable land plot inside a subsite."""

    zone_id: str
    subsite_id: str
    name: str
