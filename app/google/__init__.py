"""
Google Drive / Sheets integration: token refresh, folder upload, month-tab
sync, one-time setup and spreadsheet migration.
"""
