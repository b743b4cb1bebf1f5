"""
Quotation Tool Package

Pricing and quotation engine for electrical / EV-installation projects.
Maintains a master catalog, derives cost → selling → retail prices through
pluggable formulas, and builds versioned bills of quantities per project.
"""

__version__ = "1.0.0"
