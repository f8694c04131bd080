from assessment_validator.core.config import Settings, get_settings, settings
from assessment_validator.core.logging import PipelineLogger, get_logger

__all__ = ["Settings", "get_settings", "settings", "get_logger", "PipelineLogger"]
