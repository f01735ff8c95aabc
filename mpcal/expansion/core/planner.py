import logging
from typing import Dict, List, Optional

from mpcal.ast.classes import Archetype, Identifier, Instance
from mpcal.ast.helpers import collect_labels
from mpcal.config.config import DEFAULT_CONFIG, ExpansionConfig
from mpcal.data_structures import InstancePlan, ParameterBinding, ResolvedBlock
from mpcal.exceptions import ErrorCode, InternalCompilerError

from .name_supply import FreshNameSupply

logger = logging.getLogger(__name__)


class InstancePlanner:
    """
    Turns each instance declaration into an InstancePlan: how every archetype
    parameter is bound, and the fresh names its locals and labels take in the
    emitted process. Instances draw from the shared supply in declaration
    order, so each one gets its own batch of names.
    """

    def __init__(self, resolved: ResolvedBlock, supply: FreshNameSupply, config: ExpansionConfig = DEFAULT_CONFIG):
        self.resolved = resolved
        self.supply = supply
        self.config = config
        self.archetypes: Dict[str, Archetype] = {a.name: a for a in resolved.block.archetypes}

    def plan(self) -> List[InstancePlan]:
        plans = [self._plan_instance(instance) for instance in self.resolved.block.instances]
        logger.debug("Planned %d instance(s)", len(plans))
        return plans

    def _plan_instance(self, instance: Instance) -> InstancePlan:
        archetype = self.archetypes[instance.archetype]
        sep = self.config.name_separator

        plan = InstancePlan(
            instance=instance.name,
            archetype=archetype.name,
            self_kind=instance.self_kind,
            self_value=instance.self_value,
            span=instance.span,
        )

        for param, arg in zip(archetype.params, instance.args):
            if param.ref:
                # The resolver guarantees a ref argument is a plain identifier naming a global.
                target: Identifier = arg.value
                binding = ParameterBinding(parameter=param.name, is_ref=True, target=target.name, mapping_macro=arg.mapping, span=arg.span)
            else:
                binding = ParameterBinding(parameter=param.name, is_ref=False, value=arg.value, span=arg.span)
            plan.bindings[param.name] = binding

        for variable in archetype.variables:
            plan.renamings[variable.name] = self.supply.fresh(f"{instance.name}{sep}{variable.name}")

        for label in collect_labels(archetype.body):
            plan.labels[label.name] = self.supply.fresh(f"{instance.name}{sep}{label.name}")

        check_plan(plan, archetype)
        logger.debug("Plan for '%s': %d binding(s), %d renaming(s), %d label(s)", plan.instance, len(plan.bindings), len(plan.renamings), len(plan.labels))
        return plan


def check_plan(plan: InstancePlan, archetype: Archetype):
    """Raises if the plan binds a parameter the archetype does not declare, or misses one it does."""
    declared = {p.name for p in archetype.params}
    for name in plan.bindings:
        if name not in declared:
            raise InternalCompilerError(ErrorCode.PLAN_INCONSISTENT, plan.span, instance=plan.instance, param=name, archetype=archetype.name)
    for name in declared - set(plan.bindings):
        raise InternalCompilerError(ErrorCode.PLAN_INCONSISTENT, plan.span, instance=plan.instance, param=name, archetype=archetype.name)


def plan_instances(resolved: ResolvedBlock, supply: Optional[FreshNameSupply] = None, config: ExpansionConfig = DEFAULT_CONFIG) -> List[InstancePlan]:
    """The main entry point for instance planning."""
    if supply is None:
        supply = FreshNameSupply(resolved.visible_names)
    return InstancePlanner(resolved, supply, config).plan()
