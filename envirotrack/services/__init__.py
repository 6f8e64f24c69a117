"""
Services

This package contains the logic shared by routes and maintenance commands:
- template_service: Report template defaults and placeholder rendering
- xero_client / xero_service: Xero OAuth and invoice synchronisation
"""
