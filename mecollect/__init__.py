"""mecollect: disaggregated indicator grids, spreadsheet exchange and draft queues."""

__version__ = "0.1.0"
