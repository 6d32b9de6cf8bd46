"""
Sales Warehouse ETL

Loads operational sales records into a star-schema warehouse.
"""

__version__ = "1.0.0"
