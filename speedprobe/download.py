"""
Download speed test module.

Parallel HTTPS GETs of ``download_url?bytes=<size>&r=<random>`` per size
wave; see ``transfer.TransferTester`` for the aggregation rules.
"""
from __future__ import annotations

from typing import Optional

from .transfer import TransferResult, TransferTester
from .transport import cache_buster

DownloadResult = TransferResult


class DownloadTester(TransferTester):
    """Speed = bytes actually received / request wall-clock time."""

    direction = "download"

    async def _transfer(self, size: int, payload: Optional[bytes]) -> int:
        params = {"bytes": size, "r": cache_buster()}
        return await self.transport.download(self.url, params)
