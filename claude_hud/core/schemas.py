"""
Claude HUD - Pydantic Schemas
=============================

Wire and document schemas: the event stream line, the session handover
file, the HUD config document and the snapshots derived from the host's
settings. Document schemas are lenient: malformed entries are dropped one
by one instead of invalidating the whole document.
"""

from typing import Any, Dict, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)


# Panels the view layer knows how to draw.
PANEL_IDS: Tuple[str, ...] = (
    "status",
    "context",
    "cost",
    "tools",
    "agents",
    "todos",
    "errors",
)


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ==========================================================================
# Event Stream
# ==========================================================================

class HudEvent(BaseSchema):
    """One lifecycle notification read from the session pipe."""

    schema_version: StrictInt = Field(alias="schemaVersion", ge=1)
    event: StrictStr = Field(min_length=1)
    tool: Optional[StrictStr] = None
    tool_use_id: Optional[StrictStr] = Field(default=None, alias="toolUseId")
    input: Optional[Dict[str, Any]] = None
    response: Optional[Dict[str, Any]] = None
    session: StrictStr
    ts: Union[StrictInt, StrictFloat]

    # Advisory fields: silently dropped when not strings
    cwd: Optional[str] = None
    prompt: Optional[str] = None
    permission_mode: Optional[str] = Field(default=None, alias="permissionMode")
    transcript_path: Optional[str] = Field(default=None, alias="transcriptPath")

    @field_validator("cwd", "prompt", "permission_mode", "transcript_path", mode="before")
    @classmethod
    def drop_non_string(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None


# ==========================================================================
# Session Handover
# ==========================================================================

class HandoverDocument(BaseSchema):
    """Contents of ``refresh-<terminalId>.json`` written by the host."""

    session_id: StrictStr = Field(alias="sessionId", min_length=1)
    pipe_path: StrictStr = Field(
        validation_alias=AliasChoices("fifoPath", "pipePath", "pipe_path"),
        min_length=1,
    )
    terminal_id: Optional[StrictStr] = Field(default=None, alias="terminalId")
    transcript_path: Optional[StrictStr] = Field(default=None, alias="transcriptPath")


# ==========================================================================
# HUD Config Document
# ==========================================================================

class ModelPricing(BaseSchema):
    """Per-million-token rates for one model family."""

    input: float = Field(ge=0, allow_inf_nan=False, strict=True)
    output: float = Field(ge=0, allow_inf_nan=False, strict=True)


class PricingTable(BaseSchema):
    models: Dict[str, ModelPricing] = Field(default_factory=dict)
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")

    def for_model(self, model: Optional[str]) -> Optional[ModelPricing]:
        """Exact match first, then the first family name contained in the model id."""
        if not model:
            return None
        if model in self.models:
            return self.models[model]
        lowered = model.lower()
        for family, pricing in self.models.items():
            if family.lower() in lowered:
                return pricing
        return None


def _known_panel_ids(value: Any) -> Optional[Tuple[str, ...]]:
    if not isinstance(value, (list, tuple)):
        return None
    seen: list[str] = []
    for item in value:
        if isinstance(item, str) and item in PANEL_IDS and item not in seen:
            seen.append(item)
    return tuple(seen)


class HudConfig(BaseSchema):
    """Validated snapshot of the HUD config document."""

    panel_order: Optional[Tuple[str, ...]] = Field(default=None, alias="panelOrder")
    hidden_panels: Optional[Tuple[str, ...]] = Field(default=None, alias="hiddenPanels")
    width: Optional[int] = None
    pricing: Optional[PricingTable] = None

    @field_validator("panel_order", "hidden_panels", mode="before")
    @classmethod
    def filter_panel_ids(cls, v: Any) -> Optional[Tuple[str, ...]]:
        return _known_panel_ids(v)

    @field_validator("width", mode="before")
    @classmethod
    def positive_width(cls, v: Any) -> Optional[int]:
        if isinstance(v, int) and not isinstance(v, bool) and v > 0:
            return v
        return None

    @field_validator("pricing", mode="before")
    @classmethod
    def drop_bad_pricing(cls, v: Any) -> Any:
        if isinstance(v, PricingTable):
            return v
        if not isinstance(v, dict):
            return None

        models: Dict[str, ModelPricing] = {}
        for name, entry in v.items():
            if name == "lastUpdated":
                continue
            try:
                models[name] = ModelPricing.model_validate(entry)
            except ValidationError:
                continue

        last_updated = v.get("lastUpdated")
        return PricingTable(
            models=models,
            last_updated=last_updated if isinstance(last_updated, str) else None,
        )


# ==========================================================================
# Derived Snapshots
# ==========================================================================

class SettingsSnapshot(BaseSchema):
    """Counts and names derived from the host's settings.json."""

    model: str = "unknown"
    plugin_count: int = 0
    plugin_names: Tuple[str, ...] = ()
    mcp_count: int = 0
    mcp_names: Tuple[str, ...] = ()
    allowed_permissions: Tuple[str, ...] = ()


class ContextFilesSnapshot(BaseSchema):
    total_files: int = 0
    file_types: Dict[str, int] = Field(default_factory=dict)
