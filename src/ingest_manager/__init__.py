"""
Data Ingest Manager: rule driven transfers of tabular data into Google Sheets
"""
__version__ = '0.1'
