from typing import Dict, Any
import logging


class BaseAgent:
    """Base class for engine agents: named logger plus execution counters"""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.execution_count = 0
        self.error_count = 0

    def log_execution(self, action: str, output: Any):
        """Log a completed action for monitoring"""
        self.execution_count += 1
        self.logger.info(f"{action}: {output}")

    def log_error(self, action: str, error: Exception):
        self.error_count += 1
        self.logger.error(f"Error in {action}: {error}", exc_info=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get agent statistics"""
        total = self.execution_count + self.error_count
        return {
            "name": self.name,
            "execution_count": self.execution_count,
            "error_count": self.error_count,
            "success_rate": (
                self.execution_count / total * 100
                if total > 0 else 0
            )
        }
