"""
Result Store - append-only JSONL persistence of generation records
"""

from __future__ import annotations
import asyncio
import json
from pathlib import Path
from typing import List, Optional

import aiofiles

from companion.utils.logging import get_logger
from .types import Capability, GenerationRecord

logger = get_logger(__name__)


class ResultStore:
    """Persists settled generations and serves the gallery"""

    def __init__(self, records_path: Path):
        self.records_path = Path(records_path)
        self.records_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    async def save_generation_record(self, record: GenerationRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False) + "\n"
        async with self._lock:
            async with aiofiles.open(self.records_path, "a") as f:
                await f.write(line)
                await f.flush()
        logger.debug(
            f"Saved {record.capability.value} record {record.record_id[:8]}",
            extra={"event": "store.record.saved", "account_id": record.requester_id, "request_id": record.request_id},
        )

    async def _read_all(self) -> List[GenerationRecord]:
        if not self.records_path.exists():
            return []
        records: List[GenerationRecord] = []
        async with aiofiles.open(self.records_path, "r") as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(GenerationRecord.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping corrupt record line: {e}")
        return records

    async def list_gallery(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        is_public: Optional[bool] = None,
    ) -> List[GenerationRecord]:
        """Image records for one account, newest first"""
        records = [
            r for r in await self._read_all()
            if r.requester_id == account_id
            and r.capability is Capability.IMAGE
            and (is_public is None or r.is_public == is_public)
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[offset:offset + limit]
