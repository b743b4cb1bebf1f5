"""
Tests for derived-field resolution (cost → selling price → retail price).
"""
import copy
import math

from quotation_tool.engine.models import MANUAL, PriceField
from quotation_tool.engine.resolver import (
    DerivedFieldResolver,
    InputDefaults,
    coerce_number,
    coerce_price_field,
    resolve,
)

from conftest import charger_fields


def test_end_to_end_charger():
    result = resolve(charger_fields())

    assert result.cost.value == 106920.00
    assert result.selling_price.value == 152743
    assert result.retail_selling_price.value == 152743
    assert result.price == 152743
    assert result.warnings == []


def test_price_mirrors_retail_price():
    for fields in (
        charger_fields(),
        charger_fields(retail_selling_price=PriceField.manual(99)),
        charger_fields(selling_price=PriceField(strategy="NOPE")),
    ):
        result = resolve(fields)
        assert result.price == result.retail_selling_price.value


def test_resolve_is_pure(resolver):
    """Same input twice gives identical output; the input is not touched."""
    fields = charger_fields()
    before = copy.deepcopy(fields)

    first = resolver.resolve(fields)
    second = resolver.resolve(fields)

    assert first == second
    assert fields == before
    assert first.cost is not fields["cost"]


def test_manual_uses_override():
    result = resolve(charger_fields(cost=PriceField(value=5, strategy=MANUAL, manual_override=120)))
    assert result.cost.value == 120
    assert result.cost.strategy == MANUAL
    # Downstream stages read the manual cost
    assert result.selling_price.value == math.ceil(120 / 0.7)


def test_manual_without_override_is_zero():
    result = resolve(charger_fields(cost=PriceField(value=77, strategy=MANUAL, manual_override=None)))
    assert result.cost.value == 0


def test_manual_retail_overrides_chain():
    result = resolve(charger_fields(retail_selling_price=PriceField.manual(150000)))
    assert result.selling_price.value == 152743
    assert result.retail_selling_price.value == 150000
    assert result.price == 150000


def test_unknown_strategy_resolves_to_zero_with_warning():
    result = resolve(charger_fields(selling_price=PriceField(strategy="SP_FORMULA_Z")))

    assert result.cost.value == 106920.00
    assert result.selling_price.value == 0
    assert result.selling_price.strategy == "SP_FORMULA_Z"
    assert result.retail_selling_price.value == 0
    assert len(result.warnings) == 1
    assert "SP_FORMULA_Z" in result.warnings[0]


def test_legacy_ids_are_canonicalized():
    result = resolve(charger_fields(
        cost=PriceField(strategy="DDP_FORMULA_A"),
        selling_price=PriceField(strategy="SP_FORMULA_C"),
        retail_selling_price=PriceField(strategy="RSP_FORMULA_A"),
    ))
    assert result.cost.strategy == "FORMULA_ROUND_0.01"
    assert result.selling_price.strategy == "FACTOR_0.7_ROUND_1"
    assert result.retail_selling_price.strategy == "COPY_SELLING"
    assert result.price == 152743


def test_malformed_drivers_fall_back_to_defaults():
    fields = charger_fields(forex_rate="abc", tax_multiplier=None, operational_adjustment=float("nan"))
    ctx = DerivedFieldResolver().normalize_inputs(fields)

    assert ctx.fob == 99000
    assert ctx.forex == 1.0
    assert ctx.tax_multiplier == 1.0
    assert ctx.op_adjustment == 0.97


def test_custom_defaults():
    resolver = DerivedFieldResolver(defaults=InputDefaults(forex_rate=4.5))
    assert resolver.normalize_inputs({"fob_cost": "10"}).forex == 4.5


def test_bare_number_migrates_to_manual():
    """Price fields stored as plain numbers predate strategies."""
    result = resolve({"fob_cost": 0, "cost": 800, "selling_price": "1,200", "retail_selling_price": None})
    assert result.cost == PriceField(value=800, strategy=MANUAL, manual_override=800)
    assert result.selling_price.value == 1200
    assert result.retail_selling_price.value == 0


def test_missing_price_fields_are_manual_zero():
    result = resolve({})
    assert result.cost == PriceField(value=0, strategy=MANUAL, manual_override=0)
    assert result.price == 0


def test_coerce_number():
    assert coerce_number("1,234.5", 0) == 1234.5
    assert coerce_number("  7 ", 0) == 7
    assert coerce_number("", 3) == 3
    assert coerce_number(True, 3) == 3
    assert coerce_number(float("inf"), 3) == 3
    assert coerce_number("n/a", 3) == 3
    assert coerce_number(2, 0) == 2.0


def test_coerce_price_field_from_mapping():
    field = coerce_price_field({"value": "5", "strategy": "FORMULA_ROUND_1", "manualOverride": "9"})
    assert field == PriceField(value=5, strategy="FORMULA_ROUND_1", manual_override=9)


def test_trace_lists_each_stage():
    text = resolve(charger_fields()).get_trace_text()
    assert "Inputs" in text
    assert "cost" in text
    assert "retail_selling_price" in text
    assert "152743" in text


def test_as_updates_holds_derived_fields_only():
    updates = resolve(charger_fields()).as_updates()
    assert set(updates) == {"cost", "selling_price", "retail_selling_price", "price"}
