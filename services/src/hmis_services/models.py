"""Domain objects assembled by the access and event loaders.

These mirror the relational schema only as far as the loaders need: ids,
uids and sharing (public access string plus user and user-group grants).
Everything is a plain dataclass so rows can be mapped field by field and
grants merged on after the fact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProgramType(str, Enum):
    WITH_REGISTRATION = "WITH_REGISTRATION"
    WITHOUT_REGISTRATION = "WITHOUT_REGISTRATION"

    @classmethod
    def from_value(cls, value: str | None) -> ProgramType | None:
        if value is None:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class FeatureType(str, Enum):
    NONE = "NONE"
    MULTI_POLYGON = "MULTI_POLYGON"
    POLYGON = "POLYGON"
    POINT = "POINT"
    SYMBOL = "SYMBOL"

    @classmethod
    def from_name(cls, name: str | None) -> FeatureType:
        """Unknown or missing names map to NONE."""
        if not name:
            return cls.NONE
        try:
            return cls(name.strip().upper())
        except ValueError:
            return cls.NONE


@dataclass
class User:
    uid: str
    id: int | None = None
    username: str | None = None
    is_super: bool = False
    groups: set[str] = field(default_factory=set)


@dataclass
class UserGroup:
    id: int
    uid: str
    name: str | None = None
    members: list[User] | None = None

    def has_member(self, user: User) -> bool:
        if self.members is None:
            return False
        return any(member.uid == user.uid for member in self.members)


@dataclass
class UserAccess:
    id: int
    access: str
    user: User


@dataclass
class UserGroupAccess:
    id: int
    access: str
    user_group: UserGroup


@dataclass
class Sharing:
    public_access: str | None = None
    user_accesses: list[UserAccess] = field(default_factory=list)
    user_group_accesses: list[UserGroupAccess] = field(default_factory=list)


@dataclass
class CategoryOption:
    uid: str
    name: str | None = None
    sharing: Sharing = field(default_factory=Sharing)


@dataclass
class CategoryOptionCombo:
    uid: str
    name: str | None = None
    category_options: list[CategoryOption] = field(default_factory=list)


@dataclass
class CategoryCombo:
    id: int
    uid: str
    name: str | None = None


@dataclass
class DataSet:
    uid: str
    name: str | None = None
    sharing: Sharing = field(default_factory=Sharing)


@dataclass
class DataElementOperand:
    data_element_uid: str
    category_option_combo: CategoryOptionCombo | None = None
    attribute_option_combo: CategoryOptionCombo | None = None


@dataclass
class AggregateDataValue:
    data_element_uid: str
    period: str
    org_unit_uid: str
    category_option_combo: CategoryOptionCombo | None = None
    attribute_option_combo: CategoryOptionCombo | None = None
    value: str | None = None


@dataclass
class OrganisationUnit:
    uid: str
    id: int | None = None


@dataclass
class TrackedEntityType:
    id: int
    uid: str
    sharing: Sharing = field(default_factory=Sharing)


@dataclass
class ProgramStage:
    id: int
    uid: str
    sort_order: int | None = None
    feature_type: FeatureType = FeatureType.NONE
    sharing: Sharing = field(default_factory=Sharing)


@dataclass
class Program:
    id: int
    uid: str
    name: str | None = None
    program_type: ProgramType | None = None
    category_combo: CategoryCombo | None = None
    tracked_entity_type: TrackedEntityType | None = None
    program_stages: list[ProgramStage] = field(default_factory=list)
    organisation_units: list[OrganisationUnit] = field(default_factory=list)
    sharing: Sharing = field(default_factory=Sharing)

    @property
    def is_registration(self) -> bool:
        return self.program_type == ProgramType.WITH_REGISTRATION

    def get_stage(self, uid: str) -> ProgramStage | None:
        for stage in self.program_stages:
            if stage.uid == uid:
                return stage
        return None


class EventDataValue(BaseModel):
    """One entry of the eventdatavalues JSON column.

    The column is a JSON object keyed by data element uid; the key is
    injected as ``data_element`` before validation.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    data_element: str = Field(alias="dataElement")
    value: str | None = None
    provided_elsewhere: bool = Field(default=False, alias="providedElsewhere")
    stored_by: str | None = Field(default=None, alias="storedBy")
    created: datetime | None = None
    last_updated: datetime | None = Field(default=None, alias="lastUpdated")


@dataclass
class Note:
    uid: str
    value: str | None = None
    stored_by: str | None = None
    stored_at: datetime | None = None


@dataclass
class Event:
    uid: str
    enrollment_uid: str | None = None
    program_uid: str | None = None
    program_stage_uid: str | None = None
    org_unit_uid: str | None = None
    org_unit_name: str | None = None
    tracked_entity_instance_uid: str | None = None
    status: str | None = None
    occurred_at: datetime | None = None
    scheduled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    stored_by: str | None = None
    attribute_option_combo_uid: str | None = None
    geometry: dict[str, Any] | None = None
    deleted: bool = False
    id: int | None = None
    data_values: list[EventDataValue] = field(default_factory=list)
    notes: list[Note] = field(default_factory=list)
