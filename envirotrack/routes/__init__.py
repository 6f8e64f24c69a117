"""
API Routes

This package contains Flask blueprints for:
- auth / users: Authentication, profiles and user administration
- report_templates: Report template editing and rendering
- custom_data_fields / custom_data_field_groups: Admin-managed pick lists
- lead_clearances: Lead clearance inspections, items and photos
- invoices / xero: Invoices and the Xero integration
"""
