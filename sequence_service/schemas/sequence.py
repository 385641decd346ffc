from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,   # accept snake_case as well as camelCase
        from_attributes=True,
    )


class SequenceConfigBase(CamelSchema):
    name: str | None = Field(default=None, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    prefix: str | None = Field(default=None, max_length=20)
    separator: str | None = Field(default=None, max_length=5)
    suffix: str | None = Field(default=None, max_length=20)
    padding_width: int | None = Field(
        default=None,
        ge=1,
        le=20,
        validation_alias=AliasChoices("paddingWidth", "paddingLength", "padding_width", "padding"),
    )
    include_period: bool | None = None
    reset_cadence: str | None = Field(
        default=None,
        validation_alias=AliasChoices("resetCadence", "resetFrequency", "reset_cadence", "reset_frequency"),
    )
    start_value: int | None = Field(default=None, ge=0)
    increment_by: int | None = Field(default=None, ge=1)


class SequenceConfigCreate(SequenceConfigBase):
    code: str = Field(min_length=2, max_length=40)
    is_deletable: bool | None = None


class SequenceConfigUpdate(SequenceConfigBase):
    # Present only so a request that tries to set it can be rejected explicitly.
    current_value: int | None = None


class SequenceResetRequest(CamelSchema):
    new_start_value: int | None = Field(default=None, ge=0)


class SequenceConfigView(CamelSchema):
    id: int
    tenant_id: str
    code: str
    is_live: bool
    name: str
    description: str
    prefix: str
    separator: str
    suffix: str
    padding_width: int
    include_period: bool
    reset_cadence: str
    start_value: int
    increment_by: int
    current_value: int
    last_reset_period: int | None = None
    is_deletable: bool
    created_by: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SequenceStatusView(SequenceConfigView):
    next_value: int
    next_preview: str


class SequenceConfigListResponse(CamelSchema):
    success: bool = True
    data: list[SequenceConfigView]
    request_id: str


class SequenceConfigResponse(CamelSchema):
    success: bool = True
    data: SequenceConfigView
    request_id: str


class SequenceStatusResponse(CamelSchema):
    success: bool = True
    data: list[SequenceStatusView]
    request_id: str


class NextSequenceResponse(CamelSchema):
    success: bool = True
    sequence_number: str
    value: int
    code: str
    is_live: bool
    request_id: str


class SequenceResetView(CamelSchema):
    code: str
    old_value: int
    new_value: int
    next_preview: str


class SequenceResetResponse(CamelSchema):
    success: bool = True
    data: SequenceResetView
    request_id: str


class SequenceSeedView(CamelSchema):
    created_count: int
    skipped_count: int
    created: list[SequenceConfigView]
    skipped: list[str]


class SequenceSeedResponse(CamelSchema):
    success: bool = True
    data: SequenceSeedView
    request_id: str


class SequenceBackfillView(CamelSchema):
    code: str
    updated: int
    first_number: str | None = None
    last_number: str | None = None
    current_value: int


class SequenceBackfillResponse(CamelSchema):
    success: bool = True
    data: SequenceBackfillView
    request_id: str


class SequenceDeleteResponse(CamelSchema):
    success: bool = True
    message: str
    request_id: str


class HealthResponse(CamelSchema):
    status: str
    service: str
    timestamp: datetime
