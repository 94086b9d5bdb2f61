"""
Experiment Service

Sticky A/B variant assignment and per-variant metric aggregation for the
nudge experiments (message tone, notification frequency, intervention
timing). Assignments are random on first use and persisted, so a user keeps
the same variant across restarts.
"""

import random
from typing import Any, Dict, Optional
import logging

from pydantic import ValidationError

from config.settings import settings
from models.behavioral import ExperimentAssignment, ExperimentState, MetricAggregate
from motivation.nudge_types import EXPERIMENT_VARIANTS, Experiment
from services.key_value_store import EXPERIMENTS_KEY, KeyValueStore
from services.task_scheduler import Debouncer, TaskScheduler

COMPLETION_METRIC = "task_completed"
SENT_METRIC = "notification_sent"
FAILED_METRIC = "notification_failed"


class ExperimentService:
    """Sticky variant assignment and metric tracking"""

    def __init__(self, store: KeyValueStore, scheduler: TaskScheduler, rng: Optional[random.Random] = None):
        self.store = store
        self.clock = scheduler.clock
        self.rng = rng or random.Random()
        self.logger = logging.getLogger("ExperimentService")
        self.state = ExperimentState()
        self._debounced_save = Debouncer(
            scheduler,
            settings.BEHAVIORAL_WRITE_DEBOUNCE_SECONDS,
            self._save_state,
            name="experiment_state_write",
        )

    async def initialize(self):
        await self.reload()
        self.logger.info(f"Experiments loaded ({len(self.state.assignments)} assignments)")

    async def reload(self):
        try:
            data = await self.store.get_json(EXPERIMENTS_KEY)
        except Exception as e:
            self.logger.warning(f"Failed to read experiment state, keeping current: {e}")
            return
        if data is None:
            return
        try:
            self.state = ExperimentState.model_validate(data)
        except ValidationError as e:
            self.logger.warning(f"Invalid experiment state, resetting: {e.error_count()} errors")
            self.state = ExperimentState()

    def _experiment(self, experiment_id: Any) -> Optional[Experiment]:
        try:
            return Experiment(experiment_id)
        except ValueError:
            return None

    def get_variant(self, experiment_id: str) -> Optional[str]:
        """
        Get the user's variant for an experiment.

        Returns:
            Variant name, or None for unknown experiments or when disabled
        """
        if not settings.EXPERIMENTS_ENABLED:
            return None

        experiment = self._experiment(experiment_id)
        if experiment is None:
            self.logger.warning(f"Unknown experiment: {experiment_id}")
            return None

        variants = EXPERIMENT_VARIANTS[experiment]
        assignment = self.state.assignments.get(experiment.value)
        if assignment is not None and assignment.variant in variants:
            return assignment.variant

        variant = self.rng.choice(variants)
        self.state.assignments[experiment.value] = ExperimentAssignment(
            experiment_id=experiment.value,
            variant=variant,
            assigned_at=self.clock.now(),
        )
        self._debounced_save()
        self.logger.info(f"🧪 Assigned {experiment.value} -> {variant}")
        return variant

    def track_metric(self, experiment_id: str, metric: str, value: float = 1.0):
        """Add a metric sample to the user's variant. Never raises."""
        try:
            variant = self.get_variant(experiment_id)
            if variant is None:
                return

            by_variant = self.state.metrics.setdefault(experiment_id, {})
            by_metric = by_variant.setdefault(variant, {})
            aggregate = by_metric.setdefault(metric, MetricAggregate())
            aggregate.sum += float(value)
            aggregate.count += 1
            self._debounced_save()

            self.logger.debug(f"[experiment] {experiment_id}:{variant} - {metric}: {value}")
        except Exception as e:
            self.logger.error(f"Failed to track {metric} for {experiment_id}: {e}", exc_info=True)

    def get_experiment_results(self, experiment_id: str) -> Dict[str, Dict[str, Any]]:
        """Per-variant sample size, metric means and completion rate"""
        results = {}
        for variant, metrics in self.state.metrics.get(experiment_id, {}).items():
            sends = metrics.get(SENT_METRIC, MetricAggregate()).count
            completions = metrics.get(COMPLETION_METRIC, MetricAggregate()).count
            results[variant] = {
                "sample_size": sum(m.count for m in metrics.values()),
                "completion_rate": completions / max(1, sends),
                "metrics": {
                    name: (agg.sum / agg.count if agg.count else 0.0)
                    for name, agg in metrics.items()
                },
            }
        return results

    def get_current_experiments(self) -> Dict[str, Optional[str]]:
        """Current variant per experiment"""
        return {experiment.value: self.get_variant(experiment.value) for experiment in Experiment}

    async def flush(self):
        await self._debounced_save.flush()

    async def _save_state(self):
        try:
            await self.store.set_json(EXPERIMENTS_KEY, self.state.model_dump(mode="json"))
        except Exception as e:
            self.logger.error(f"Failed to save experiment state: {e}")
