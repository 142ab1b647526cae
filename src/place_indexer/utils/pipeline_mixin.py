"""Pipeline execution mixin for multi-step runs.

Used by the bulk import and the update reconciler to run their steps in
order and report each step as it finishes.
"""

from __future__ import annotations

from typing import Iterable, Callable, Any
from abc import abstractmethod
import logging

from colorama import Fore, Style

logger = logging.getLogger(__name__)


class PipelineMixin:
    """Mixin for classes that run a sequence of named steps.

    Usage:
        class MyRun(PipelineMixin):
            MODALITY = 'update'

            def _load_pipeline(self):
                return [
                    ('Load countries', self.load_countries, {}),
                    ('Update places', self.update_places, {'table': 'placex'}),
                ]
    """

    # Must be set by the class using this mixin
    MODALITY: str

    @abstractmethod
    def _load_pipeline(self, **kwargs: Any) -> Iterable[tuple[str, Callable, dict[str, Any]]]:
        """Define the pipeline steps.

        Returns:
            List of tuples: (step_name, function, kwargs)
        """
        ...

    def _execute_pipeline(self, progress: bool = True, **pipeline_kwargs: Any) -> list[Any]:
        """Execute every step and return their results in step order.

        A failing step is reported and its exception re-raised, later steps
        do not run.
        """
        results = []

        for name, func, kwargs in self._load_pipeline(**pipeline_kwargs):
            try:
                results.append(func(**kwargs))
                if progress:
                    self._log_step_success(name)
            except Exception as e:
                self._log_step_failure(name, e)
                raise

        return results

    def _step_prefix(self, step_name: str) -> str:
        max_len = len('Update interpolations')  # Longest typical step name
        padding = max(max_len - len(step_name), 0) + 4
        modality = getattr(self, 'MODALITY', 'Pipeline').title()
        return f'{modality} -- {step_name} {"-" * padding}>'

    def _log_step_success(self, step_name: str) -> None:
        logger.info(f'{self._step_prefix(step_name)} {Fore.GREEN}Complete{Style.RESET_ALL}')

    def _log_step_failure(self, step_name: str, error: Exception) -> None:
        logger.error(f'{self._step_prefix(step_name)} {Fore.RED}Failed{Style.RESET_ALL}: {error}')
