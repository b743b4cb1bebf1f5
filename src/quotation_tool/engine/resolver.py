"""
Derived Field Resolver - recomputes the cost → selling price → retail chain.

Resolution order (each stage reads the value produced by the one before):
1. Normalize the numeric cost drivers (FOB, forex, tax, OPTA)
2. Cost (DDP) from the drivers
3. Selling price (SP) from cost
4. Retail selling price (RSP) from selling price
5. price mirrors the retail selling price

The resolver is pure: no logging, no I/O, no mutation of its input.
Unknown strategy ids are reported as warnings on the result.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .models import MANUAL, PRICE_FIELDS, PriceField, TraceStep
from .strategies import (
    DEFAULT_STRATEGIES,
    CostContext,
    RetailContext,
    SellingContext,
    StrategyRegistry,
    StrategySet,
)


@dataclass(frozen=True)
class InputDefaults:
    """Fallbacks for blank or unparsable cost drivers."""
    fob_cost: float = 0.0
    forex_rate: float = 1.0
    tax_multiplier: float = 1.0
    operational_adjustment: float = 0.97


DEFAULT_INPUTS = InputDefaults()


def coerce_number(value: Any, default: float) -> float:
    """Convert user or stored input to a float, falling back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def coerce_price_field(raw: Any) -> PriceField:
    """
    Read a stored price field.

    Bare numbers come from data written before strategies existed and are
    migrated to a MANUAL field holding that number.
    """
    if isinstance(raw, PriceField):
        return PriceField(raw.value, raw.strategy, raw.manual_override)
    if isinstance(raw, Mapping):
        override = raw.get("manual_override", raw.get("manualOverride"))
        return PriceField(
            value=coerce_number(raw.get("value"), 0.0),
            strategy=str(getattr(raw.get("strategy"), "value", raw.get("strategy")) or MANUAL),
            manual_override=None if override is None else coerce_number(override, 0.0),
        )
    if raw is None or raw == "":
        return PriceField()
    amount = coerce_number(raw, 0.0)
    return PriceField.manual(amount)


@dataclass
class ResolvedPricing:
    """Output of one resolution pass."""
    cost: PriceField
    selling_price: PriceField
    retail_selling_price: PriceField
    price: float
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        self.warnings.append(warning)

    def as_updates(self) -> dict:
        """Derived fields as a record delta."""
        return {
            "cost": self.cost,
            "selling_price": self.selling_price,
            "retail_selling_price": self.retail_selling_price,
            "price": self.price,
        }

    def get_trace_text(self) -> str:
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)


class DerivedFieldResolver:
    """
    Recomputes the three dependent price fields of a catalog item.

    Accepts any mapping of item fields (a full item, or an item merged with
    pending edits). Only the cost drivers and the three price fields are read.
    """

    def __init__(self, strategies: Optional[StrategySet] = None,
                 defaults: Optional[InputDefaults] = None):
        self.strategies = strategies or DEFAULT_STRATEGIES
        self.defaults = defaults or DEFAULT_INPUTS

    def normalize_inputs(self, item: Mapping[str, Any]) -> CostContext:
        return CostContext(
            fob=coerce_number(item.get("fob_cost"), self.defaults.fob_cost),
            forex=coerce_number(item.get("forex_rate"), self.defaults.forex_rate),
            tax_multiplier=coerce_number(item.get("tax_multiplier"), self.defaults.tax_multiplier),
            op_adjustment=coerce_number(item.get("operational_adjustment"),
                                        self.defaults.operational_adjustment),
        )

    def resolve(self, item: Mapping[str, Any]) -> ResolvedPricing:
        """Resolve cost, selling price and retail price in dependency order."""
        ctx = self.normalize_inputs(item)
        fields_in = {name: coerce_price_field(item.get(name)) for name in PRICE_FIELDS}

        result = ResolvedPricing(
            cost=PriceField(), selling_price=PriceField(),
            retail_selling_price=PriceField(), price=0.0,
        )
        result.add_trace(
            "Inputs", "FOB × Forex × Tax / OPTA",
            f"{ctx.fob} × {ctx.forex} × {ctx.tax_multiplier} / {ctx.op_adjustment}",
        )

        result.cost = self._resolve_field(
            "cost", fields_in["cost"], self.strategies.cost, ctx, result
        )
        result.selling_price = self._resolve_field(
            "selling_price", fields_in["selling_price"], self.strategies.selling_price,
            SellingContext(cost=result.cost.value), result,
        )
        result.retail_selling_price = self._resolve_field(
            "retail_selling_price", fields_in["retail_selling_price"],
            self.strategies.retail_selling_price,
            RetailContext(selling_price=result.selling_price.value), result,
        )

        result.price = result.retail_selling_price.value
        result.add_trace("Price", "Price mirrors retail selling price", f"{result.price}")
        return result

    def _resolve_field(self, name: str, current: PriceField, registry: StrategyRegistry,
                       context, result: ResolvedPricing) -> PriceField:
        if current.strategy == MANUAL:
            override = current.manual_override if current.manual_override is not None else 0.0
            value = coerce_number(override, 0.0)
            result.add_trace(name, "Manual input", f"{value}")
            return PriceField(value=value, strategy=MANUAL, manual_override=current.manual_override)

        strategy = registry.get(current.strategy)
        if strategy is None:
            result.add_warning(
                f"Unknown {registry.name} strategy '{current.strategy}'; value set to 0"
            )
            result.add_trace(name, f"Unknown strategy {current.strategy}", "0")
            return PriceField(value=0.0, strategy=current.strategy,
                              manual_override=current.manual_override)

        value = strategy.calculate(context)
        result.add_trace(name, strategy.label, f"{value}")
        return PriceField(value=value, strategy=strategy.id.value,
                          manual_override=current.manual_override)


_default_resolver = DerivedFieldResolver()


def resolve(item: Mapping[str, Any]) -> ResolvedPricing:
    """Resolve with the default registries and input defaults."""
    return _default_resolver.resolve(item)
