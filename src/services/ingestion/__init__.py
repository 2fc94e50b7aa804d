"""MGNREGA district ingestion: collect from data.gov.in, transform, upsert.

Public API::

    from src.services.ingestion import (
        DataGovClient,
        RecordCollector,
        DistrictSyncPipeline,
        SyncScheduler,
    )
"""

from __future__ import annotations

from src.services.ingestion.collector import CollectionLimits, RecordCollector
from src.services.ingestion.data_gov_client import DataGovClient, DataGovPage
from src.services.ingestion.pipeline import DistrictSyncPipeline, SyncResult
from src.services.ingestion.scheduler import SyncScheduler
from src.services.ingestion.transform import transform_records

__all__ = [
    "CollectionLimits",
    "DataGovClient",
    "DataGovPage",
    "DistrictSyncPipeline",
    "RecordCollector",
    "SyncResult",
    "SyncScheduler",
    "transform_records",
]
