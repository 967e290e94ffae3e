from utils.logger import logger_manager, log_function, SUCCESS

# Modules import logging helpers from here and create their own logger:
#   logger = logger_manager.setup_logger(__name__)

__all__ = ["logger_manager", "log_function", "SUCCESS"]
