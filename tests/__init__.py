"""
Test suite for the inventory bulk upload backend.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_row_validation_service.py -v
"""
