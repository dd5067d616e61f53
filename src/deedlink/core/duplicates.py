"""
Detection of parcels whose id is not unique within one table.

The join matches parcels by id, so a repeated id makes its result
ambiguous. These helpers find such parcels so they can be reported before a
join is trusted.
"""

import logging
from typing import Dict, List, Optional

from deedlink.core.multiset import CountingSet
from deedlink.models.records import Parcel, ParcelTable

logger = logging.getLogger(__name__)


class DuplicateIdentifier:
    """Partitions a parcel table into unique-id and repeated-id parcels."""

    def partition(self, table: ParcelTable, want_duplicates: bool) -> ParcelTable:
        """
        Split ``table`` by key multiplicity in a single pass.

        Every parcel whose key occurs two or more times lands in the
        duplicates table once per occurrence; a key seen exactly once never
        does. Parcels without a key are grouped under the missing key.

        Args:
            table: Table to partition
            want_duplicates: Return the duplicates when True, else the unique parcels

        Returns:
            New table sharing the input's field-name tallies
        """
        key_counts = CountingSet()
        unique: Dict[Optional[str], Parcel] = {}
        duplicates: List[Parcel] = []

        for parcel in table:
            if key_counts.add(parcel.key) > 1:
                first = unique.pop(parcel.key, None)
                if first is not None:
                    duplicates.append(first)
                duplicates.append(parcel)
            else:
                unique[parcel.key] = parcel

        chosen = duplicates if want_duplicates else list(unique.values())
        if duplicates:
            logger.warning(
                f"{len(duplicates)} {table.source.value.upper()} parcels share an id "
                f"with another parcel"
            )
        return ParcelTable(
            source=table.source,
            parcels=[parcel.clone() for parcel in chosen],
            field_names=table.field_names.copy(),
        )

    def find_key_collisions(self, table: ParcelTable) -> List[Optional[str]]:
        """Sorted keys that occur at least twice in ``table``."""
        return CountingSet(table.keys).keys_with_count(2)


def find_duplicates(table: ParcelTable) -> ParcelTable:
    """Convenience function returning the repeated-id parcels of a table."""
    return DuplicateIdentifier().partition(table, want_duplicates=True)
