from .run import AnalysisRunResult, analyze_from_config

__all__ = ["AnalysisRunResult", "analyze_from_config"]
