"""
Pricing strategy registries.

Three registries, one per derived price field:
- Cost (DDP): landed cost from FOB, forex, tax multiplier and OPTA
- Selling price (SP): cost divided by a margin factor
- Retail selling price (RSP): by default a copy of SP

Strategy ids are closed enums whose values are the wire ids stored with
each price field. Legacy ids from older data are mapped on lookup.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from .rounding import ceiling_to_significance


@dataclass(frozen=True)
class CostContext:
    fob: float
    forex: float
    tax_multiplier: float
    op_adjustment: float


@dataclass(frozen=True)
class SellingContext:
    cost: float


@dataclass(frozen=True)
class RetailContext:
    selling_price: float


class CostStrategy(str, Enum):
    FORMULA_ROUND_0_01 = "FORMULA_ROUND_0.01"
    FORMULA_ROUND_0_01_PLUS_30 = "FORMULA_ROUND_0.01_PLUS_30"
    FORMULA_ROUND_1 = "FORMULA_ROUND_1"
    FORMULA_ROUND_1_PLUS_4000 = "FORMULA_ROUND_1_PLUS_4000"
    MANUAL = "MANUAL"


class SellingStrategy(str, Enum):
    FACTOR_0_5_ROUND_0_1 = "FACTOR_0.5_ROUND_0.1"
    FACTOR_0_7_ROUND_0_1 = "FACTOR_0.7_ROUND_0.1"
    FACTOR_0_7_ROUND_1 = "FACTOR_0.7_ROUND_1"
    FACTOR_0_75_ROUND_1 = "FACTOR_0.75_ROUND_1"
    FACTOR_0_8_ROUND_0_1 = "FACTOR_0.8_ROUND_0.1"
    FACTOR_0_8_ROUND_1 = "FACTOR_0.8_ROUND_1"
    FACTOR_0_85_ROUND_0_1 = "FACTOR_0.85_ROUND_0.1"
    FACTOR_0_85_ROUND_1 = "FACTOR_0.85_ROUND_1"
    FACTOR_0_9_ROUND_0_1 = "FACTOR_0.9_ROUND_0.1"
    FACTOR_0_95_ROUND_0_1 = "FACTOR_0.95_ROUND_0.1"
    FACTOR_1_ROUND_0_1 = "FACTOR_1_ROUND_0.1"
    MANUAL = "MANUAL"


class RetailStrategy(str, Enum):
    COPY_SELLING = "COPY_SELLING"
    MANUAL = "MANUAL"


C = TypeVar("C")
E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class PricingStrategy(Generic[C]):
    """A named formula for one price field."""
    id: Enum
    label: str
    calculate: Callable[[C], float]


class StrategyRegistry(Generic[E, C]):
    """Lookup table from strategy id to formula for a single price field."""

    def __init__(self, name: str, ids: type, strategies: list[PricingStrategy],
                 legacy_ids: Optional[dict[str, Enum]] = None):
        self.name = name
        self.ids = ids
        self._strategies = {s.id: s for s in strategies}
        self._legacy_ids = legacy_ids or {}

    def parse(self, strategy_id) -> Optional[Enum]:
        """Map a stored strategy id (canonical or legacy) to its enum member."""
        if isinstance(strategy_id, self.ids):
            return strategy_id
        key = str(getattr(strategy_id, "value", strategy_id) or "").strip()
        if key in self._legacy_ids:
            return self._legacy_ids[key]
        try:
            return self.ids(key)
        except ValueError:
            return None

    def get(self, strategy_id) -> Optional[PricingStrategy]:
        member = self.parse(strategy_id)
        if member is None:
            return None
        return self._strategies.get(member)

    def is_known(self, strategy_id) -> bool:
        return self.get(strategy_id) is not None

    def options(self) -> list[dict]:
        """Id/label pairs for strategy pickers."""
        return [{"id": s.id.value, "label": s.label} for s in self._strategies.values()]

    def __contains__(self, strategy_id) -> bool:
        return self.is_known(strategy_id)

    def __len__(self) -> int:
        return len(self._strategies)


def _manual(_ctx) -> float:
    # Manual fields never run a formula; the resolver uses manual_override
    return 0.0


def _landed(ctx: CostContext, significance: float) -> float:
    if ctx.op_adjustment == 0:
        return 0.0
    return ceiling_to_significance(
        (ctx.fob * ctx.forex * ctx.tax_multiplier) / ctx.op_adjustment, significance
    )


def _landed_plus(offset: float, significance: float) -> Callable[[CostContext], float]:
    def calculate(ctx: CostContext) -> float:
        if ctx.op_adjustment == 0:
            return 0.0
        return round(_landed(ctx, significance) + offset, 2)
    return calculate


def _margin(factor: float, significance: float) -> Callable[[SellingContext], float]:
    def calculate(ctx: SellingContext) -> float:
        return ceiling_to_significance(ctx.cost / factor, significance)
    return calculate


COST_STRATEGIES = StrategyRegistry(
    "cost",
    CostStrategy,
    [
        PricingStrategy(CostStrategy.FORMULA_ROUND_0_01, "Formula A (Standard)",
                        lambda ctx: _landed(ctx, 0.01)),
        PricingStrategy(CostStrategy.FORMULA_ROUND_0_01_PLUS_30, "Formula B (+30)",
                        _landed_plus(30, 0.01)),
        PricingStrategy(CostStrategy.FORMULA_ROUND_1, "Formula C (Round 1)",
                        lambda ctx: _landed(ctx, 1)),
        PricingStrategy(CostStrategy.FORMULA_ROUND_1_PLUS_4000, "Formula D (Round 1 + 4000)",
                        _landed_plus(4000, 1)),
        PricingStrategy(CostStrategy.MANUAL, "Manual Input", _manual),
    ],
    legacy_ids={
        "DDP_FORMULA_A": CostStrategy.FORMULA_ROUND_0_01,
        "DDP_FORMULA_B": CostStrategy.FORMULA_ROUND_0_01_PLUS_30,
        "DDP_FORMULA_C": CostStrategy.FORMULA_ROUND_1,
        "DDP_FORMULA_D": CostStrategy.FORMULA_ROUND_1_PLUS_4000,
    },
)

# (factor, significance) per selling strategy, in picker order
_SELLING_FORMULAS = [
    (SellingStrategy.FACTOR_0_5_ROUND_0_1, 0.5, 0.1),
    (SellingStrategy.FACTOR_0_7_ROUND_0_1, 0.7, 0.1),
    (SellingStrategy.FACTOR_0_7_ROUND_1, 0.7, 1),
    (SellingStrategy.FACTOR_0_75_ROUND_1, 0.75, 1),
    (SellingStrategy.FACTOR_0_8_ROUND_0_1, 0.8, 0.1),
    (SellingStrategy.FACTOR_0_8_ROUND_1, 0.8, 1),
    (SellingStrategy.FACTOR_0_85_ROUND_0_1, 0.85, 0.1),
    (SellingStrategy.FACTOR_0_85_ROUND_1, 0.85, 1),
    (SellingStrategy.FACTOR_0_9_ROUND_0_1, 0.9, 0.1),
    (SellingStrategy.FACTOR_0_95_ROUND_0_1, 0.95, 0.1),
    (SellingStrategy.FACTOR_1_ROUND_0_1, 1, 0.1),
]

SELLING_STRATEGIES = StrategyRegistry(
    "selling_price",
    SellingStrategy,
    [
        PricingStrategy(sid, f"Formula {chr(ord('A') + i)} (/{factor}, {sig})", _margin(factor, sig))
        for i, (sid, factor, sig) in enumerate(_SELLING_FORMULAS)
    ] + [PricingStrategy(SellingStrategy.MANUAL, "Manual Input", _manual)],
    legacy_ids={
        f"SP_FORMULA_{chr(ord('A') + i)}": sid
        for i, (sid, _factor, _sig) in enumerate(_SELLING_FORMULAS)
    },
)

RETAIL_STRATEGIES = StrategyRegistry(
    "retail_selling_price",
    RetailStrategy,
    [
        PricingStrategy(RetailStrategy.COPY_SELLING, "Same as SP", lambda ctx: ctx.selling_price),
        PricingStrategy(RetailStrategy.MANUAL, "Manual Input", _manual),
    ],
    legacy_ids={"RSP_FORMULA_A": RetailStrategy.COPY_SELLING},
)


@dataclass(frozen=True)
class StrategySet:
    """The three registries a resolver dispatches through."""
    cost: StrategyRegistry = COST_STRATEGIES
    selling_price: StrategyRegistry = SELLING_STRATEGIES
    retail_selling_price: StrategyRegistry = RETAIL_STRATEGIES

    def options(self) -> dict[str, list[dict]]:
        return {
            "cost": self.cost.options(),
            "selling_price": self.selling_price.options(),
            "retail_selling_price": self.retail_selling_price.options(),
        }


DEFAULT_STRATEGIES = StrategySet()
