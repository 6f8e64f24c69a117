"""
Utility Functions

This package contains helper functions for:
- auth_middleware: Bearer token loading and validation/permission decorators
- date_utils: Australia/Sydney date formatting
- image_compressor: Photo compression for clearance items
- logging_config: Structured logging setup
- mongo: ObjectId and datetime coercion
"""
