"""capes_reports package.

Contains modules for reading the CAPES international-mobility grant exports
and the currency conversion table, cleaning & validating grant rows, building
the two beneficiary views, computing the report catalogue, and publishing the
resulting tables for a dashboard.

Architecture:
- CSV exports → Clean → Views → Reports
- Dask is used for the partitioned base relations; report tables are small
  and materialized to pandas
- Pydantic models validate grant rows and document report row shapes
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
