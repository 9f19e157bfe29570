"""Lookup collaborators for the refresh executor.

- client: live RapidAPI visa-requirement lookups
- dataset: offline lookups from the passport-index CSV
"""

from lookup.client import VisaApiClient, parse_payload  # noqa: F401
from lookup.dataset import DatasetLookup  # noqa: F401
