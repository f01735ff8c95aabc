import logging
from typing import Any, Dict, List, Optional

from mpcal.ast.classes import ModularPlusCalBlock, PlusCalAlgorithm
from mpcal.ast.helpers import unshare
from mpcal.config.config import DEFAULT_CONFIG, ExpansionConfig
from mpcal.diagnostics import DiagnosticSink

from .emitter import emit_algorithm
from .inliner import inline_instances
from .name_supply import FreshNameSupply
from .planner import plan_instances
from .resolver import resolve_block

logger = logging.getLogger(__name__)


class ModularPlusCalExpander:
    """
    Orchestrates the expansion pass: resolution, instance planning, inlining
    and emission. All state of one run (the fresh-name supply, the diagnostics)
    lives on this object.
    """

    def __init__(
        self,
        block: ModularPlusCalBlock,
        config: ExpansionConfig = DEFAULT_CONFIG,
        sink: Optional[DiagnosticSink] = None,
        stop_after_stage: Optional[str] = None,
    ):
        self.block = block
        self.config = config
        self.sink = sink if sink is not None else DiagnosticSink()
        self.stop_after_stage = stop_after_stage
        self.artifacts: Dict[str, Any] = {}
        self.results: List[Any] = []

    def run(self) -> Any:
        """Executes the expansion pipeline."""

        # --- Stage 2a: Resolution ---
        # Bindings are keyed by node identity, so a node object reused in two scopes must become two occurrences.
        block = unshare(self.block)
        resolved = self._run_stage("resolver", resolve_block, block, self.config, self.sink)
        if self.stop_after_stage == "resolver":
            return resolved

        # Every later stage draws from this supply, so introduced names are unique across the output.
        supply = FreshNameSupply(resolved.visible_names)

        # --- Stage 2b: Instance Planning ---
        plans = self._run_stage("planner", plan_instances, resolved, supply, self.config)
        if self.stop_after_stage == "planner":
            return plans

        # --- Stage 2c: Inlining ---
        inlined = self._run_stage("inliner", inline_instances, resolved, plans, supply, self.config)
        if self.stop_after_stage == "inliner":
            return inlined

        # --- Stage 2d: Emission ---
        return self._run_stage("emitter", emit_algorithm, resolved, inlined, self.sink, self.config)

    def _run_stage(self, stage_name: str, stage_func, *args, **kwargs) -> Any:
        """Executes a single stage, stores its artifact, and returns the result."""
        logger.debug("Running expansion stage '%s'", stage_name)
        result = stage_func(*args, **kwargs)
        self.artifacts[stage_name] = result
        self.results.append(result)
        return result


def expand_block(block: ModularPlusCalBlock, config: ExpansionConfig = DEFAULT_CONFIG, sink: Optional[DiagnosticSink] = None) -> PlusCalAlgorithm:
    """
    The main entry point for the expansion pass: translates a Modular PlusCal
    block into a flat PlusCal algorithm.

    Raises CompilationErrors if resolution fails, and ModularPlusCalError on the
    first error found while inlining or emitting.
    """
    return ModularPlusCalExpander(block, config, sink).run()
