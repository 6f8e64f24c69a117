"""
Database Models

This package contains MongoDB model classes for:
- User / TokenBlacklist: Authentication and profile management
- ReportTemplate: Per-report-type headers and standard sections
- CustomDataField / CustomDataFieldGroup: Admin-managed pick lists
- LeadClearance: Lead clearance inspections with items and photos
- Invoice / XeroToken: Invoicing and the Xero connection
"""
