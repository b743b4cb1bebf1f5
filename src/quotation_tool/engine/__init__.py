"""Engine subpackage - rounding, pricing strategies and derived-field resolution."""
from .rounding import ceiling_to_significance
from .resolver import DerivedFieldResolver, ResolvedPricing, resolve
from .models import PriceField, MasterItem, BQItem, Project, ProjectVersion

__all__ = [
    'ceiling_to_significance', 'DerivedFieldResolver', 'ResolvedPricing', 'resolve',
    'PriceField', 'MasterItem', 'BQItem', 'Project', 'ProjectVersion',
]
