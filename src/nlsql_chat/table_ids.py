from __future__ import annotations

import itertools
import secrets

# Ids minted on this side carry this prefix; the backend never issues it, so a
# page request against one can be refused before it leaves the process.
LOCAL_TABLE_PREFIX = "local:"


def is_local_table_id(table_id: str) -> bool:
    return table_id.startswith(LOCAL_TABLE_PREFIX)


class TableIdFactory:
    def __init__(self, *, suffix_bytes: int = 4):
        self._counter = itertools.count(1)
        self._suffix_bytes = suffix_bytes

    def new_id(self) -> str:
        return f"{LOCAL_TABLE_PREFIX}table-{next(self._counter)}-{secrets.token_hex(self._suffix_bytes)}"
