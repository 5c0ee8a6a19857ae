from .math_tools import MathTools
from .history_lookup import HistoricalLookup
from .progression import ProgressionAdvisor
from .weight_converter import WeightConverter

__all__ = ["MathTools", "HistoricalLookup", "ProgressionAdvisor", "WeightConverter"]
