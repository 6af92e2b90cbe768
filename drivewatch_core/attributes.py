"""SMART attribute interpretation table

Maps vendor attribute IDs to the role the analyzer gives them. Supporting a
new vendor attribute means adding a row here, not a branch in the analyzer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional

from .models import AttributeReading, AttributeSnapshot


class AttributeKind(str, Enum):
    """How the analyzer interprets an attribute"""
    REALLOCATED_SECTORS = "reallocated_sectors"
    PENDING_SECTORS = "pending_sectors"
    UNCORRECTABLE_SECTORS = "uncorrectable_sectors"
    WEAR_LEVELING_COUNT = "wear_leveling_count"
    PROGRAM_ERASE_COUNT = "program_erase_count"
    LIFE_REMAINING = "life_remaining"  # normalized value is life left
    LIFE_CONSUMED = "life_consumed"    # 100 - normalized value is life used


@dataclass(frozen=True)
class AttributeRule:
    """Interpretation rule for one SMART attribute ID"""
    attribute_id: int
    name: str
    kind: AttributeKind


ATTRIBUTE_RULES: Dict[int, AttributeRule] = {
    rule.attribute_id: rule
    for rule in (
        AttributeRule(5, "Reallocated_Sector_Ct", AttributeKind.REALLOCATED_SECTORS),
        AttributeRule(197, "Current_Pending_Sector", AttributeKind.PENDING_SECTORS),
        AttributeRule(198, "Offline_Uncorrectable", AttributeKind.UNCORRECTABLE_SECTORS),
        AttributeRule(177, "Wear_Leveling_Count", AttributeKind.WEAR_LEVELING_COUNT),
        AttributeRule(173, "Average_Erase_Count", AttributeKind.PROGRAM_ERASE_COUNT),
        AttributeRule(231, "SSD_Life_Left", AttributeKind.LIFE_REMAINING),
        AttributeRule(233, "Media_Wearout_Indicator", AttributeKind.LIFE_REMAINING),
        AttributeRule(202, "Percent_Lifetime_Used", AttributeKind.LIFE_CONSUMED),
        AttributeRule(226, "Workld_Media_Wear_Indic", AttributeKind.LIFE_CONSUMED),
    )
}


def rule_for(attribute_id: int) -> Optional[AttributeRule]:
    """Return the interpretation rule for an attribute ID, if one exists"""
    return ATTRIBUTE_RULES.get(attribute_id)


def display_name(attr: AttributeReading) -> str:
    """The reported attribute name, falling back to the table name"""
    if attr.name:
        return attr.name
    rule = ATTRIBUTE_RULES.get(attr.id)
    return rule.name if rule else f"Attribute_{attr.id}"


def classify(attr: AttributeReading) -> Optional[AttributeKind]:
    rule = ATTRIBUTE_RULES.get(attr.id)
    return rule.kind if rule else None


def attributes_of_kind(snapshot: AttributeSnapshot, kind: AttributeKind) -> Iterator[AttributeReading]:
    """Yield the snapshot's readings interpreted as ``kind``, in snapshot order"""
    for attr in snapshot.attributes:
        if classify(attr) == kind:
            yield attr


def raw_count(snapshot: AttributeSnapshot, kind: AttributeKind) -> int:
    """Largest raw counter among readings of ``kind``, 0 if none are present"""
    return max((attr.raw_value for attr in attributes_of_kind(snapshot, kind)), default=0)
