"""Analysis Oracle services."""

from .base import AnalysisOracle, OracleError, OracleParseError
from .dummy import DummyAnalysisOracle

__all__ = ["AnalysisOracle", "DummyAnalysisOracle", "OracleError", "OracleParseError"]
