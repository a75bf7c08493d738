"""System-of-record access (Airtable REST API)."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict
from urllib.parse import quote

import aiohttp

from ..errors import StorageError

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Record collaborator: updates fields of an existing record."""

    @abstractmethod
    async def update_record(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update ``fields`` on ``record_id`` and return the updated record."""


class AirtableRecordStore(RecordStore):
    """One Airtable table."""

    def __init__(self, api_key: str, base_id: str, table: str, api_url: str = "https://api.airtable.com/v0"):
        self.api_key = api_key
        self.base_id = base_id
        self.table = table
        self.api_url = api_url.rstrip("/")
        logger.info(f"AirtableRecordStore initialized for table: {table}")

    async def update_record(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        endpoint = f"{self.api_url}/{self.base_id}/{quote(self.table)}/{quote(record_id)}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        async with aiohttp.ClientSession() as session:
            async with session.patch(endpoint, headers=headers, json={"fields": fields}) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise StorageError(
                        f"Airtable API error: {response.status} - {error_text}",
                        status=response.status,
                    )
                result = await response.json()

        logger.info(f"Updated record {record_id}: {', '.join(fields)}")
        return result
