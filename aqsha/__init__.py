"""
Aqsha Tracker - Source Package

Personal-finance tracking backend with an AI assistant that answers
questions about a user's own financial data and generates reports.

DESIGN PRINCIPLES:
1. Every operation is scoped to one user - no cross-tenant reads
2. Fail early, fail visibly
3. Money is Decimal, never float
4. Every step must be auditable
5. Storage and AI provider are swappable
"""

__version__ = "1.0.0"
__author__ = "Aqsha Tracker Team"
