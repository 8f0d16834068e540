"""
Music league dashboard: CSV import, catalog enrichment and statistics API
"""

__version__ = "1.0.0"
