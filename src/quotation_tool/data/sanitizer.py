"""
Validation boundary for records arriving from untyped sources.

Every record read from the remote store, a CSV import or an API payload
passes through here. Missing or malformed fields get documented defaults
instead of None / NaN, and the legacy camelCase keys of older data are
accepted alongside the current snake_case names.
"""
import logging
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..engine.models import (
    MANUAL,
    UNCATEGORIZED,
    BQItem,
    MasterItem,
    PriceField,
    Project,
    ProjectVersion,
    new_id,
    now_iso,
)
from ..engine.resolver import DEFAULT_INPUTS, coerce_number, coerce_price_field

logger = logging.getLogger(__name__)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


class PriceFieldRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    value: float = 0.0
    strategy: str = MANUAL
    manual_override: Optional[float] = Field(
        default=0.0, validation_alias=AliasChoices("manual_override", "manualOverride")
    )

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v):
        return coerce_number(v, 0.0)

    @field_validator("manual_override", mode="before")
    @classmethod
    def _override(cls, v):
        return None if v is None else coerce_number(v, 0.0)

    @field_validator("strategy", mode="before")
    @classmethod
    def _strategy(cls, v):
        return _text(getattr(v, "value", v), MANUAL)

    def to_model(self) -> PriceField:
        return PriceField(value=self.value, strategy=self.strategy,
                          manual_override=self.manual_override)


def _price_field(v) -> dict:
    pf = coerce_price_field(v)
    return {"value": pf.value, "strategy": pf.strategy, "manual_override": pf.manual_override}


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MasterItemRecord(_Record):
    id: str = Field(default_factory=new_id)
    category: str = UNCATEGORIZED
    item_name: str = Field(default="Unknown Item", validation_alias=AliasChoices("item_name", "itemName"))
    description: str = ""
    uom: str = "Unit"
    brand: str = ""
    axsku: str = ""
    mpn: str = ""
    group: str = Field(default="", validation_alias=AliasChoices("group", "group_name"))
    fob_cost: float = Field(default=DEFAULT_INPUTS.fob_cost,
                            validation_alias=AliasChoices("fob_cost", "rexScFob", "rex_sc_fob", "fob"))
    forex_rate: float = Field(default=DEFAULT_INPUTS.forex_rate,
                              validation_alias=AliasChoices("forex_rate", "forex"))
    tax_multiplier: float = Field(default=DEFAULT_INPUTS.tax_multiplier,
                                  validation_alias=AliasChoices("tax_multiplier", "sst", "tax"))
    operational_adjustment: float = Field(
        default=DEFAULT_INPUTS.operational_adjustment,
        validation_alias=AliasChoices("operational_adjustment", "opta", "opAdjustment"),
    )
    cost: PriceFieldRecord = Field(default_factory=PriceFieldRecord,
                                   validation_alias=AliasChoices("cost", "rexScDdp", "rex_sc_ddp"))
    selling_price: PriceFieldRecord = Field(default_factory=PriceFieldRecord,
                                            validation_alias=AliasChoices("selling_price", "rexSp", "rex_sp"))
    retail_selling_price: PriceFieldRecord = Field(
        default_factory=PriceFieldRecord,
        validation_alias=AliasChoices("retail_selling_price", "rexRsp", "rex_rsp"),
    )
    price: float = 0.0
    is_deleted: bool = Field(default=False, validation_alias=AliasChoices("is_deleted", "isDeleted"))

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return _text(v) or new_id()

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return _text(v, UNCATEGORIZED)

    @field_validator("item_name", mode="before")
    @classmethod
    def _item_name(cls, v):
        return _text(v, "Unknown Item")

    @field_validator("uom", mode="before")
    @classmethod
    def _uom(cls, v):
        return _text(v, "Unit")

    @field_validator("description", "brand", "axsku", "mpn", "group", mode="before")
    @classmethod
    def _plain_text(cls, v):
        return _text(v)

    @field_validator("fob_cost", mode="before")
    @classmethod
    def _fob(cls, v):
        return coerce_number(v, DEFAULT_INPUTS.fob_cost)

    @field_validator("forex_rate", mode="before")
    @classmethod
    def _forex(cls, v):
        return coerce_number(v, DEFAULT_INPUTS.forex_rate)

    @field_validator("tax_multiplier", mode="before")
    @classmethod
    def _tax(cls, v):
        return coerce_number(v, DEFAULT_INPUTS.tax_multiplier)

    @field_validator("operational_adjustment", mode="before")
    @classmethod
    def _opta(cls, v):
        return coerce_number(v, DEFAULT_INPUTS.operational_adjustment)

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v):
        return coerce_number(v, 0.0)

    @field_validator("cost", "selling_price", "retail_selling_price", mode="before")
    @classmethod
    def _price_fields(cls, v):
        return _price_field(v)

    @field_validator("is_deleted", mode="before")
    @classmethod
    def _deleted(cls, v):
        return bool(v)

    def to_model(self) -> MasterItem:
        data = self.model_dump(exclude={"cost", "selling_price", "retail_selling_price"})
        return MasterItem(
            **data,
            cost=self.cost.to_model(),
            selling_price=self.selling_price.to_model(),
            retail_selling_price=self.retail_selling_price.to_model(),
        )


class BQItemRecord(MasterItemRecord):
    project_id: str = Field(default="", validation_alias=AliasChoices("project_id", "projectId"))
    version_id: str = Field(default="", validation_alias=AliasChoices("version_id", "versionId"))
    master_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("master_id", "masterId"))
    quotation_description: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("quotation_description", "quotationDescription")
    )
    qty: float = 1.0
    total: float = 0.0
    is_optional: bool = Field(default=False, validation_alias=AliasChoices("is_optional", "isOptional"))
    sort_order: int = Field(default=0, validation_alias=AliasChoices("sort_order", "sortOrder"))

    # Custom lines may be blank
    category: str = ""
    item_name: str = Field(default="", validation_alias=AliasChoices("item_name", "itemName"))
    uom: str = ""

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return _text(v)

    @field_validator("item_name", mode="before")
    @classmethod
    def _item_name(cls, v):
        return _text(v)

    @field_validator("uom", mode="before")
    @classmethod
    def _uom(cls, v):
        return _text(v)

    @field_validator("qty", "total", mode="before")
    @classmethod
    def _numbers(cls, v):
        return coerce_number(v, 0.0)

    @field_validator("sort_order", mode="before")
    @classmethod
    def _order(cls, v):
        return int(coerce_number(v, 0.0))

    @field_validator("is_optional", mode="before")
    @classmethod
    def _optional(cls, v):
        return bool(v)

    def to_model(self) -> BQItem:
        item = BQItem(
            id=self.id,
            project_id=self.project_id,
            version_id=self.version_id,
            master_id=self.master_id,
            category=self.category,
            item_name=self.item_name,
            description=self.description,
            quotation_description=self.quotation_description,
            uom=self.uom,
            price=self.price,
            qty=self.qty,
            total=self.total,
            is_optional=self.is_optional,
            fob_cost=self.fob_cost,
            forex_rate=self.forex_rate,
            tax_multiplier=self.tax_multiplier,
            operational_adjustment=self.operational_adjustment,
            cost=self.cost.to_model(),
            selling_price=self.selling_price.to_model(),
            retail_selling_price=self.retail_selling_price.to_model(),
        )
        # Stored totals are never trusted
        item.recompute_total()
        return item


class ProjectRecord(_Record):
    id: str = Field(default_factory=new_id)
    project_name: str = Field(default="", validation_alias=AliasChoices("project_name", "projectName"))
    client_name: str = Field(default="", validation_alias=AliasChoices("client_name", "clientName"))
    client_contact: str = Field(default="", validation_alias=AliasChoices("client_contact", "clientContact"))
    client_address: str = Field(default="", validation_alias=AliasChoices("client_address", "clientAddress"))
    date: str = ""
    validity_period: str = Field(default="", validation_alias=AliasChoices("validity_period", "validityPeriod"))
    quote_id: str = Field(default="", validation_alias=AliasChoices("quote_id", "quoteId"))
    discount: float = 0.0
    created_at: str = Field(default_factory=now_iso, validation_alias=AliasChoices("created_at", "createdAt"))
    is_deleted: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return _text(v) or new_id()

    @field_validator("project_name", "client_name", "client_contact", "client_address",
                     "date", "validity_period", "quote_id", mode="before")
    @classmethod
    def _plain_text(cls, v):
        return _text(v)

    @field_validator("discount", mode="before")
    @classmethod
    def _discount(cls, v):
        return max(coerce_number(v, 0.0), 0.0)

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at(cls, v):
        return _text(v) or now_iso()

    @field_validator("is_deleted", mode="before")
    @classmethod
    def _deleted(cls, v):
        return bool(v)

    def to_model(self) -> Project:
        return Project(**self.model_dump())


def _master_fallback(raw: Mapping[str, Any]) -> MasterItem:
    return MasterItem(
        id=_text(raw.get("id")) or new_id(),
        category=_text(raw.get("category"), UNCATEGORIZED),
        item_name=_text(raw.get("item_name") or raw.get("itemName"), "Unknown Item"),
        description=_text(raw.get("description")),
        uom=_text(raw.get("uom"), "Unit"),
    )


def sanitize_master_item(raw: Any) -> MasterItem:
    """Validate a raw catalog record, returning a safe item on failure."""
    if isinstance(raw, MasterItem):
        return raw
    raw = raw if isinstance(raw, Mapping) else {}
    try:
        return MasterItemRecord.model_validate(raw).to_model()
    except ValidationError as e:
        logger.warning("Catalog record %s failed validation, using defaults: %s", raw.get("id"), e)
        return _master_fallback(raw)


def sanitize_bq_item(raw: Any) -> BQItem:
    """Validate a raw line-item record, returning a safe line on failure."""
    if isinstance(raw, BQItem):
        return raw
    raw = raw if isinstance(raw, Mapping) else {}
    try:
        return BQItemRecord.model_validate(raw).to_model()
    except ValidationError as e:
        logger.warning("Line item %s failed validation, using defaults: %s", raw.get("id"), e)
        return BQItem(
            id=_text(raw.get("id")) or new_id(),
            project_id=_text(raw.get("project_id")),
            version_id=_text(raw.get("version_id")),
            qty=0.0,
        )


def sanitize_project(raw: Any, versions: Optional[list[ProjectVersion]] = None) -> Project:
    """Validate a raw project record; versions are attached by the caller."""
    raw = raw if isinstance(raw, Mapping) else {}
    try:
        project = ProjectRecord.model_validate(raw).to_model()
    except ValidationError as e:
        logger.warning("Project %s failed validation, using defaults: %s", raw.get("id"), e)
        project = Project(id=_text(raw.get("id")) or new_id())
    project.versions = list(versions or [])
    return project


def sanitize_version(raw: Any) -> ProjectVersion:
    """Validate a raw version record including its catalog snapshot."""
    raw = raw if isinstance(raw, Mapping) else {}
    snapshot = raw.get("master_snapshot", raw.get("masterSnapshot")) or []
    if not isinstance(snapshot, list):
        snapshot = []
    version = ProjectVersion(
        id=_text(raw.get("id")) or new_id(),
        name=_text(raw.get("name"), "version-1"),
        master_snapshot=[sanitize_master_item(r) for r in snapshot],
    )
    created_at = _text(raw.get("created_at") or raw.get("createdAt"))
    if created_at:
        version.created_at = created_at
    return version
