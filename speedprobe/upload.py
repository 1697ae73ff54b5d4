"""
Upload speed test module.

Uses HTTPS POST of freshly generated random bytes, one body per
connection, so nothing along the path can compress or cache it.
"""
from __future__ import annotations

import os
from typing import Optional

from .transfer import TransferResult, TransferTester

UploadResult = TransferResult


class UploadTester(TransferTester):
    """Speed = payload size / request wall-clock time."""

    direction = "upload"

    def _payload(self, size: int) -> Optional[bytes]:
        # Called for the whole wave before any request starts its clock.
        return os.urandom(size)

    async def _transfer(self, size: int, payload: Optional[bytes]) -> int:
        await self.transport.upload(self.url, payload or b"")
        return size
