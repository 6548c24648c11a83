"""
SmartPark - parking reservation and EV charging booking engine

Layers:
- domain: models, aggregates, strategies, slot registry, clock
- application: reservation and charging engines, sweeper, commands, reports
- infrastructure: persistence gateways and demo data
"""

__version__ = "1.0.0"
