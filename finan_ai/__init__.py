"""
Finan AI - Source Package

A personal-finance tracker: transactions, categories, budgets, goals,
investments and recurring charges, plus a Gemini-backed assistant that can
read and add to this data.

DESIGN PRINCIPLES:
1. State is an explicit handle, saved explicitly
2. AI output is untrusted until it passes the schema gate
3. Recurring rules materialize exactly once per occurrence
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finan AI Team"
