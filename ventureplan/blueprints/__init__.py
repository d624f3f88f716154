"""
Venture Plan Workbench
Blueprint registry.
"""
