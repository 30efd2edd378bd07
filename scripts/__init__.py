"""
Backend Scripts Module

This module contains utility scripts for database operations and maintenance.

Available scripts:
    - seed_data.py: Creates the default workflows
    - validate_workflow.py: Prints a design-time report for a definition

Usage:
    python -m scripts.seed_data
    python -m scripts.validate_workflow --file definition.json
"""
