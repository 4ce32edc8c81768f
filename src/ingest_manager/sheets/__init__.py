"""
Google Sheets integration package
"""
from .client import GoogleSheetStore, GoogleTab, GoogleWorkbook

__all__ = ['GoogleSheetStore', 'GoogleTab', 'GoogleWorkbook']
