"""Scan cursor owned by the chain watcher."""

from pydantic import Field

from .base import OracleBaseModel
from .exceptions import CursorRegressionError


class ScanCursor(OracleBaseModel):
    """Last block height whose events were fully handed to the verifier."""

    last_processed_block: int = Field(..., ge=0)

    def advance(self, block_height: int) -> None:
        """Move the cursor forward.

        Raises:
            CursorRegressionError: If `block_height` is behind the cursor.
        """
        if block_height < self.last_processed_block:
            raise CursorRegressionError(
                "Cursor cannot move back from {0} to {1}".format(self.last_processed_block, block_height)
            )
        self.last_processed_block = int(block_height)
