"""
Command-line interface and console reporting.
"""
