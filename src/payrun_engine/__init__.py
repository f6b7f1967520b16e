"""Pay-run engine.

Pay periods, pay runs built from compensation and booking sources, manual
adjustments, summaries and payment processing on SQLAlchemy and FastAPI.
"""

__version__ = "0.1.0"
