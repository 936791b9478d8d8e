"""Shared core type aliases used across contracts, marshaling, and ports."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

RowMapping = Mapping[str, Any]
Rows = List[RowMapping]

Attributes = Dict[str, Any]
MaybeAttributes = Optional[Attributes]

# (escaped column identifier, SQL literal fragment)
ColumnFragment = tuple[str, str]
