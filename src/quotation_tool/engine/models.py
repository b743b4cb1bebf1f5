"""
Data models for the quotation engine.

Uses dataclasses for structured, type-safe data representation.
"""
import copy
import uuid
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Optional


MANUAL = "MANUAL"

UNCATEGORIZED = "Uncategorized"

# Names of the three derived price fields, in dependency order
PRICE_FIELDS = ("cost", "selling_price", "retail_selling_price")

# Numeric drivers feeding the cost formula
COST_DRIVERS = ("fob_cost", "forex_rate", "tax_multiplier", "operational_adjustment")


def new_id() -> str:
    """Generate a client-side entity id."""
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class PriceField:
    """
    A derived price column.

    ``value`` is the only thing downstream code reads. For MANUAL fields it
    mirrors ``manual_override``; otherwise it is the last formula output.
    """
    value: float = 0.0
    strategy: str = MANUAL
    manual_override: Optional[float] = 0.0

    @property
    def is_manual(self) -> bool:
        return self.strategy == MANUAL

    @classmethod
    def manual(cls, amount: float) -> 'PriceField':
        return cls(value=amount, strategy=MANUAL, manual_override=amount)

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "strategy": str(getattr(self.strategy, "value", self.strategy)),
            "manual_override": self.manual_override,
        }


@dataclass
class TraceStep:
    """A single step in a pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class MasterItem:
    """A priceable catalog entry."""
    id: str
    category: str = UNCATEGORIZED
    item_name: str = ""
    description: str = ""
    uom: str = "Unit"
    brand: str = ""
    axsku: str = ""
    mpn: str = ""
    group: str = ""

    # Cost drivers
    fob_cost: float = 0.0
    forex_rate: float = 1.0
    tax_multiplier: float = 1.0
    operational_adjustment: float = 0.97

    # Derived pricing chain
    cost: PriceField = field(default_factory=PriceField)
    selling_price: PriceField = field(default_factory=PriceField)
    retail_selling_price: PriceField = field(default_factory=PriceField)
    price: float = 0.0

    is_deleted: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BQItem:
    """A line in one version's bill of quantities."""
    id: str
    project_id: str
    version_id: str
    master_id: Optional[str] = None
    category: str = ""
    item_name: str = ""
    description: str = ""
    quotation_description: Optional[str] = None
    uom: str = ""
    price: float = 0.0
    qty: float = 1.0
    total: float = 0.0
    is_optional: bool = False

    # Snapshot of the catalog pricing at the time the line was created
    fob_cost: float = 0.0
    forex_rate: float = 1.0
    tax_multiplier: float = 1.0
    operational_adjustment: float = 0.97
    cost: PriceField = field(default_factory=PriceField)
    selling_price: PriceField = field(default_factory=PriceField)
    retail_selling_price: PriceField = field(default_factory=PriceField)

    def recompute_total(self):
        self.total = self.price * self.qty

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProjectVersion:
    """A named, independently snapshotted revision of a project's quotation."""
    id: str
    name: str
    created_at: str = field(default_factory=now_iso)
    master_snapshot: list[MasterItem] = field(default_factory=list)

    def snapshot_item(self, master_id: str) -> Optional[MasterItem]:
        for item in self.master_snapshot:
            if item.id == master_id:
                return item
        return None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Project:
    """A client engagement holding one or more versions."""
    id: str
    project_name: str = ""
    client_name: str = ""
    client_contact: str = ""
    client_address: str = ""
    date: str = ""
    validity_period: str = ""
    quote_id: str = ""
    discount: float = 0.0
    created_at: str = field(default_factory=now_iso)
    versions: list[ProjectVersion] = field(default_factory=list)
    is_deleted: bool = False

    def get_version(self, version_id: str) -> Optional[ProjectVersion]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QuotationTotals:
    """Final figures for a quotation version."""
    subtotal: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    grand_total: float = 0.0
    optional_total: float = 0.0


@dataclass
class LineAnalytics:
    """Cost / margin breakdown for one line."""
    line_id: str
    total_cost: float
    total_selling: float
    total_retail: float
    gross_profit: float
    gross_profit_percent: float


@dataclass
class VersionSummary:
    """Aggregated margin figures for the non-optional lines of a version."""
    line_count: int = 0
    total_cost: float = 0.0
    total_selling: float = 0.0
    total_retail: float = 0.0
    gross_profit: float = 0.0
    gross_profit_percent: float = 0.0
    lines: list[LineAnalytics] = field(default_factory=list)


class RowKind(str, Enum):
    CATEGORY = "category"
    OPTIONAL_SEPARATOR = "optional_separator"
    ITEM = "item"


@dataclass
class RenderRow:
    """One row of the printable quotation."""
    kind: RowKind
    category: Optional[str] = None
    item: Optional[BQItem] = None
    index: Optional[int] = None


def shallow_fields(entity: Any) -> dict:
    """Field values of a dataclass without recursing into nested dataclasses."""
    return {f.name: getattr(entity, f.name) for f in fields(entity)}


def clone(entity: Any) -> Any:
    """Deep, independent copy of a model object."""
    return copy.deepcopy(entity)
