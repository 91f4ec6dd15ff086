"""Faker-backed sample-data generators."""

from land_kpr.generators.applicants import KprApplicantGenerator
from land_kpr.generators.bookings import BookingRequest, BookingRequestGenerator
from land_kpr.generators.catalog import SiteCatalog, SiteCatalogGenerator

__all__ = [
    "BookingRequest",
    "BookingRequestGenerator",
    "KprApplicantGenerator",
    "SiteCatalog",
    "SiteCatalogGenerator",
]
