"""
FinanceFlow - Personal Finance Tracker

A personal finance application with:
- Income and expense tracking
- Recurring transactions that backfill missed occurrences automatically
- Bills with due-date reminders
- AI-assisted categorization, receipt reading and advice
"""

__version__ = "0.1.0"
