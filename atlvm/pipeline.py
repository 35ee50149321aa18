"""
atlvm/pipeline.py
=================

The execution pipeline: a single-use, strictly forward state machine.

::

    READY → MATCHING → CREATION → INITIALIZATION → RESOLUTION → COMPLETE
                    \\__________________ any error _______________/→ FAILED

* **Matching**        – ``RuleScheduler`` builds the immutable schedule.
* **Creation**        – every scheduled application instantiates its output
  elements and registers them in the trace before any binding runs.
* **Initialization**  – bindings are evaluated in schedule order, then in
  declaration order, and assigned through the target model provider.
* **Resolution**      – bindings that observed a lazy application still
  being initialized are evaluated again, then the result is assembled.

Any exception moves the pipeline to ``FAILED`` and propagates; no partial
result is returned, but objects already created stay in the target models.

Typical usage::

    result = await execute(module, {"IN": source}, {"OUT": target})
    tables = result.target_models["OUT"]
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from atlvm.ast import CollectionKind
from atlvm.config import EngineConfig
from atlvm.environment import Environment
from atlvm.errors import (
    ArityMismatchError,
    AtlError,
    InternalError,
    ModelAliasError,
    NavigationError,
    PipelineStateError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from atlvm.evaluator import Evaluator, accumulate_time
from atlvm.lazy import LazyRuleCache
from atlvm.model import maybe_await
from atlvm.module import (
    Binding,
    BindingStatement,
    CalledRule,
    LazyRule,
    OutPatternElement,
    Parameter,
    Statement,
    TransformationModule,
)
from atlvm.navigator import HelperTable, ModelNavigator
from atlvm.scheduler import RuleScheduler, Schedule
from atlvm.trace import TraceModel
from atlvm.values import OclCollection, builtin_type_name, describe_type, split_type_name, value_key

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    READY = "ready"
    MATCHING = "matching"
    CREATION = "creation"
    INITIALIZATION = "initialization"
    RESOLUTION = "resolution"
    COMPLETE = "complete"
    FAILED = "failed"


_NEXT_PHASE: Dict[Phase, Phase] = {
    Phase.READY: Phase.MATCHING,
    Phase.MATCHING: Phase.CREATION,
    Phase.CREATION: Phase.INITIALIZATION,
    Phase.INITIALIZATION: Phase.RESOLUTION,
    Phase.RESOLUTION: Phase.COMPLETE,
}


# ===================================================================== #
#  Result types                                                         #
# ===================================================================== #

@dataclass(frozen=True)
class ExecutionStatistics:
    """Counters gathered over one run."""

    objects_created: int = 0
    rules_applied: int = 0
    bindings_evaluated: int = 0
    matched_rules_applied: int = 0
    lazy_rules_applied: int = 0
    called_rules_applied: int = 0
    lazy_cache_hits: int = 0
    trace_links: int = 0
    deferred_bindings_resolved: int = 0
    helper_invocations: int = 0
    navigations: int = 0
    elements_processed: int = 0
    phase_times: Mapping[str, float] = field(default_factory=dict)
    # Rule / helper name -> seconds, nested invocations included.
    rule_times: Mapping[str, float] = field(default_factory=dict)
    helper_times: Mapping[str, float] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objects_created": self.objects_created,
            "rules_applied": self.rules_applied,
            "bindings_evaluated": self.bindings_evaluated,
            "matched_rules_applied": self.matched_rules_applied,
            "lazy_rules_applied": self.lazy_rules_applied,
            "called_rules_applied": self.called_rules_applied,
            "lazy_cache_hits": self.lazy_cache_hits,
            "trace_links": self.trace_links,
            "deferred_bindings_resolved": self.deferred_bindings_resolved,
            "helper_invocations": self.helper_invocations,
            "navigations": self.navigations,
            "elements_processed": self.elements_processed,
            "phase_times": dict(self.phase_times),
            "rule_times": dict(self.rule_times),
            "helper_times": dict(self.helper_times),
            "elapsed_seconds": self.elapsed_seconds,
        }

    def summary(self) -> str:
        """Counters as a short, human-readable block."""
        lines = [
            "Transformation summary:",
            f"  Duration: {self.elapsed_seconds * 1000:.3f}ms",
            f"  Rules applied: {self.rules_applied}"
            f" (matched {self.matched_rules_applied}, lazy {self.lazy_rules_applied},"
            f" called {self.called_rules_applied})",
            f"  Elements processed: {self.elements_processed}",
            f"  Elements created: {self.objects_created}",
            f"  Bindings evaluated: {self.bindings_evaluated}",
            f"  Trace links: {self.trace_links}",
            f"  Deferred bindings: {self.deferred_bindings_resolved}",
            f"  Lazy cache hits: {self.lazy_cache_hits}",
            f"  Helper invocations: {self.helper_invocations}",
            f"  Navigations: {self.navigations}",
        ]
        return "\n".join(lines)

    def detailed_summary(self, top: int = 10) -> str:
        """``summary()`` followed by phase times and the slowest rules and helpers."""
        lines = [self.summary(), "", "Phase times:"]
        lines.extend(f"  {name}: {secs * 1000:.3f}ms" for name, secs in self.phase_times.items())
        for title, times in (("Rule times", self.rule_times), ("Helper times", self.helper_times)):
            if not times:
                continue
            lines.extend(["", f"{title}:"])
            slowest = sorted(times.items(), key=lambda item: item[1], reverse=True)[:top]
            lines.extend(f"  {name}: {secs * 1000:.3f}ms" for name, secs in slowest)
        return "\n".join(lines)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a successful run."""

    target_models: Mapping[str, Any]
    statistics: ExecutionStatistics
    schedule: Schedule
    trace: TraceModel


@dataclass
class _CalledResult:
    rule_name: str
    arguments: Tuple[Hashable, ...]
    result: Any


@dataclass
class _BindingFrame:
    """State of one binding evaluation."""

    # Set when the binding sees a lazy application that is still initializing.
    saw_incomplete: bool = False
    # Called rules executed by this evaluation, in call order.
    calls: List[_CalledResult] = field(default_factory=list)
    # Results recorded by an earlier evaluation of the same binding.
    replay: List[_CalledResult] = field(default_factory=list)

    def take(self, rule_name: str, arguments: Tuple[Hashable, ...]) -> Optional[_CalledResult]:
        for index, call in enumerate(self.replay):
            if call.rule_name == rule_name and call.arguments == arguments:
                return self.replay.pop(index)
        return None


@dataclass
class _DeferredBinding:
    rule_name: str
    target: Any
    binding: Binding
    bindings: Dict[str, Any]
    calls: List[_CalledResult]


def _check_aliases(direction: str, declared: Sequence[Tuple[str, str]], supplied: Mapping[str, Any]) -> None:
    names = [alias for alias, _ in declared]
    missing = [a for a in names if a not in supplied]
    unexpected = [a for a in supplied if a not in names]
    if missing or unexpected:
        raise ModelAliasError(direction, missing, unexpected)


# ===================================================================== #
#  Pipeline                                                             #
# ===================================================================== #

class ExecutionPipeline:
    """
    One transformation run of ``module`` over the given models.

    Parameters
    ----------
    module:
        The transformation program.
    source_models / target_models:
        Model providers keyed by the aliases the module declares.
    navigator:
        Optional ``Navigator``; by default a ``ModelNavigator`` over the
        module's helper table.
    config:
        Engine settings; defaults to ``EngineConfig()``.
    """

    def __init__(
        self,
        module: TransformationModule,
        source_models: Mapping[str, Any],
        target_models: Mapping[str, Any],
        *,
        navigator: Any = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.config = config or EngineConfig()
        for warning in self.config.validate():
            logger.warning("EngineConfig: %s", warning)

        _check_aliases("source", module.source_models, source_models)
        _check_aliases("target", module.target_models, target_models)

        self.module = module
        self.source_models: Dict[str, Any] = dict(source_models)
        self.target_models: Dict[str, Any] = dict(target_models)

        self.helpers = HelperTable.from_module(module, self.config.native_helpers)
        self.navigator = navigator if navigator is not None else ModelNavigator(self.helpers)
        self.trace = TraceModel()
        self.lazy_cache = LazyRuleCache(self._create_lazy, self._initialize_lazy)
        self.evaluator = Evaluator(
            self.navigator, helpers=self.helpers, context=self, config=self.config
        )
        self.scheduler = RuleScheduler(module, self.evaluator)

        self.phase = Phase.READY
        self.schedule: Optional[Schedule] = None
        self._applications: List[Dict[str, Any]] = []
        self._providers: Dict[int, Any] = {}
        self._deferred: List[_DeferredBinding] = []
        # One frame per binding being evaluated, innermost last.
        self._frames: List[_BindingFrame] = []
        self._depth = 0
        self._phase_times: Dict[str, float] = {}
        self._rule_times: Dict[str, float] = {}

        self._objects_created = 0
        self._bindings_evaluated = 0
        self._matched_applied = 0
        self._lazy_applied = 0
        self._called_applied = 0
        self._deferred_resolved = 0

    # -- State machine ---------------------------------------------------
    def _advance(self, phase: Phase) -> None:
        if _NEXT_PHASE.get(self.phase) is not phase:
            raise PipelineStateError(self.phase.name, phase.name)
        logger.debug("%s: %s -> %s", self.module.name, self.phase.name, phase.name)
        self.phase = phase

    async def _run_phase(self, phase: Phase, step: Callable[[], Awaitable[None]]) -> None:
        self._advance(phase)
        started = time.perf_counter()
        await step()
        elapsed = time.perf_counter() - started
        if self.config.record_phase_times:
            self._phase_times[phase.value] = elapsed
        logger.info("%s: %s done in %.3fs", self.module.name, phase.value, elapsed)

    async def run(self) -> ExecutionResult:
        """
        Run every phase in order and return the assembled result.

        On failure the target models may already hold objects created
        before the error; nothing is rolled back, so the caller must
        discard them.
        """
        if self.phase is not Phase.READY:
            raise PipelineStateError(self.phase.name, Phase.MATCHING.name)
        started = time.perf_counter()
        try:
            await self._run_phase(Phase.MATCHING, self._match)
            await self._run_phase(Phase.CREATION, self._create)
            await self._run_phase(Phase.INITIALIZATION, self._initialize)
            await self._run_phase(Phase.RESOLUTION, self._resolve)
        except BaseException as exc:
            failed_in = self.phase
            self.phase = Phase.FAILED
            logger.error(
                "%s: transformation failed during %s: %s",
                self.module.name, failed_in.value, exc,
            )
            raise
        self._advance(Phase.COMPLETE)
        return self._result(time.perf_counter() - started)

    # -- Phases ----------------------------------------------------------
    async def _match(self) -> None:
        self.schedule = await self.scheduler.build(self.source_models)

    async def _create(self) -> None:
        assert self.schedule is not None
        for entry in self.schedule:
            with accumulate_time(self._rule_times, entry.rule.name):
                outputs = await self._instantiate(entry.rule.outputs)
            self.trace.register(entry.rule.name, entry.source, outputs)
            self._applications.append(outputs)
            self._matched_applied += 1

    async def _initialize(self) -> None:
        assert self.schedule is not None
        for entry, outputs in zip(self.schedule, self._applications):
            bindings = {entry.rule.source.variable: entry.source}
            bindings.update(outputs)
            with accumulate_time(self._rule_times, entry.rule.name):
                await self._initialize_outputs(entry.rule.name, entry.rule.outputs, outputs, bindings)

    async def _resolve(self) -> None:
        # Re-evaluation may fire new lazy applications that defer further
        # bindings, so the list can grow while it is walked.
        index = 0
        while index < len(self._deferred):
            deferred = self._deferred[index]
            index += 1
            env = self.evaluator.root_environment(deferred.bindings)
            # Called rules already ran during initialization; their
            # results are reused instead of creating new objects.
            await self._apply_binding(
                deferred.rule_name, deferred.target, deferred.binding, env,
                deferrable=False, replay=deferred.calls,
            )
            self._deferred_resolved += 1
        if self._deferred:
            logger.debug("%s: re-evaluated %d deferred bindings", self.module.name, index)

    # -- Target objects --------------------------------------------------
    async def _provider_call(self, target: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await maybe_await(fn(*args))
        except AtlError:
            raise
        except Exception as exc:
            raise NavigationError(target, exc) from exc

    def _target_provider(self, type_name: str) -> Any:
        qualifier, _ = split_type_name(type_name)
        if qualifier is None:
            if len(self.target_models) == 1:
                return next(iter(self.target_models.values()))
            raise UnsupportedOperationError(
                f"create {type_name}", "several target models; qualify the type"
            )
        for alias, metamodel in self.module.target_metamodels.items():
            if qualifier in (alias, metamodel):
                return self.target_models[alias]
        raise UnsupportedOperationError(
            f"create {type_name}", f"no target model conforms to '{qualifier}'"
        )

    async def _instantiate(self, elements: Sequence[OutPatternElement]) -> Dict[str, Any]:
        outputs: Dict[str, Any] = {}
        for element in elements:
            provider = self._target_provider(element.type_name)
            obj = await self._provider_call(
                f"create {element.type_name}", provider.create, element.type_name
            )
            self._providers[id(obj)] = provider
            self._objects_created += 1
            outputs[element.variable] = obj
        return outputs

    def _implicit_target(self, value: Any) -> Any:
        if isinstance(value, OclCollection):
            return OclCollection.of(value.kind, [self._implicit_target(v) for v in value])
        if builtin_type_name(value) is not None:
            return value
        target = self.trace.default_target(value)
        return value if target is None else target

    async def _assign(self, target: Any, feature: str, value: Any) -> None:
        provider = self._providers.get(id(target))
        if provider is None:
            raise InternalError(f"no target model owns {target!r}")
        if self.config.implicit_resolution:
            value = self._implicit_target(value)
        if isinstance(value, OclCollection):
            value = list(value)
        await self._provider_call(f"set {feature}", provider.set_feature, target, feature, value)

    # -- Bindings --------------------------------------------------------
    async def _apply_binding(
        self,
        rule_name: str,
        target: Any,
        binding: Binding,
        env: Environment,
        deferrable: bool = True,
        replay: Sequence[_CalledResult] = (),
    ) -> None:
        frame = _BindingFrame(replay=list(replay))
        self._frames.append(frame)
        try:
            value = await self.evaluator.evaluate(binding.value, env)
        finally:
            self._frames.pop()
        self._bindings_evaluated += 1
        await self._assign(target, binding.feature, value)
        if frame.saw_incomplete and deferrable:
            logger.debug("%s: deferring binding '%s'", rule_name, binding.feature)
            self._deferred.append(
                _DeferredBinding(rule_name, target, binding, env.snapshot(), frame.calls)
            )

    async def _initialize_outputs(
        self,
        rule_name: str,
        elements: Sequence[OutPatternElement],
        outputs: Mapping[str, Any],
        bindings: Mapping[str, Any],
    ) -> None:
        env = self.evaluator.root_environment(bindings)
        for element in elements:
            target = outputs[element.variable]
            for binding in element.bindings:
                await self._apply_binding(rule_name, target, binding, env)

    # -- TransformationContext -------------------------------------------
    async def _check_argument(self, rule_name: str, parameter: Parameter, value: Any) -> None:
        if parameter.type_name is None or value is None:
            return
        ancestry = await self.evaluator.type_ancestry(value)
        if split_type_name(parameter.type_name)[1] not in ancestry:
            raise TypeMismatchError(
                parameter.type_name,
                describe_type(value),
                context=f"argument '{parameter.name}' of rule '{rule_name}'",
            )

    def _enter_rule(self, rule_name: str) -> None:
        if self._depth >= self.config.max_lazy_depth:
            raise UnsupportedOperationError(
                rule_name, f"rule invocations nested deeper than {self.config.max_lazy_depth}"
            )
        self._depth += 1

    def _refuse_while_matching(self, rule_name: str) -> None:
        if self.phase is Phase.MATCHING:
            raise UnsupportedOperationError(
                rule_name, "rules cannot be invoked while matching; guards must not create objects"
            )

    async def invoke_lazy(self, rule: LazyRule, argument: Any) -> Any:
        self._refuse_while_matching(rule.name)
        if argument is None:
            return None
        await self._check_argument(rule.name, rule.parameter, argument)
        self._enter_rule(rule.name)
        try:
            outputs = await self.lazy_cache.invoke(rule.name, argument)
        finally:
            self._depth -= 1
        if self._frames and not self.lazy_cache.is_complete(rule.name, argument):
            self._frames[-1].saw_incomplete = True
        return outputs[rule.outputs[0].variable]

    async def _create_lazy(self, rule_name: str, source: Any) -> Mapping[str, Any]:
        rule = self.module.lazy_rule(rule_name)
        if rule is None:
            raise InternalError(f"lazy rule '{rule_name}' vanished")
        with accumulate_time(self._rule_times, rule_name):
            outputs = await self._instantiate(rule.outputs)
        self.trace.register(rule_name, source, outputs, kind="lazy")
        self._lazy_applied += 1
        return outputs

    async def _initialize_lazy(self, rule_name: str, source: Any, outputs: Mapping[str, Any]) -> None:
        rule = self.module.lazy_rule(rule_name)
        if rule is None:
            raise InternalError(f"lazy rule '{rule_name}' vanished")
        bindings = {rule.parameter.name: source}
        bindings.update(outputs)
        with accumulate_time(self._rule_times, rule_name):
            await self._initialize_outputs(rule_name, rule.outputs, outputs, bindings)

    async def invoke_called(self, rule: CalledRule, arguments: Sequence[Any]) -> Any:
        self._refuse_while_matching(rule.name)
        if len(arguments) != len(rule.parameters):
            raise ArityMismatchError(rule.name, len(rule.parameters), len(arguments))
        for parameter, argument in zip(rule.parameters, arguments):
            await self._check_argument(rule.name, parameter, argument)

        keys = tuple(value_key(a) for a in arguments)
        frame = self._frames[-1] if self._frames else None
        if frame is not None:
            recorded = frame.take(rule.name, keys)
            if recorded is not None:
                logger.debug("%s: reusing result from the first evaluation", rule.name)
                return recorded.result

        self._enter_rule(rule.name)
        # The body gets its own frame so calls it makes are not recorded
        # against the enclosing binding.
        body_frame = _BindingFrame()
        self._frames.append(body_frame)
        try:
            with accumulate_time(self._rule_times, rule.name):
                outputs = await self._instantiate(rule.outputs)
                bindings: Dict[str, Any] = {p.name: a for p, a in zip(rule.parameters, arguments)}
                bindings.update(outputs)
                await self._initialize_outputs(rule.name, rule.outputs, outputs, bindings)
                env = self.evaluator.root_environment(bindings)
                result = None
                for statement in rule.body:
                    result = await self._execute_statement(statement, env)
        finally:
            self._frames.pop()
            self._depth -= 1
        self._called_applied += 1
        if rule.outputs:
            result = outputs[rule.outputs[0].variable]
        if frame is not None:
            frame.saw_incomplete = frame.saw_incomplete or body_frame.saw_incomplete
            frame.calls.append(_CalledResult(rule.name, keys, result))
        return result

    async def execute_called_rule(self, name: str, arguments: Sequence[Any] = ()) -> Any:
        """
        Run the called rule ``name`` after the transformation completed.

        Objects it creates are added to the target models and counted in
        ``statistics()``.
        """
        if self.phase is not Phase.COMPLETE:
            raise PipelineStateError(self.phase.name, "execute_called_rule")
        rule = self.module.called_rule(name)
        if rule is None:
            raise UnsupportedOperationError(name, "no called rule with that name")
        return await self.invoke_called(rule, list(arguments))

    async def _execute_statement(self, statement: Statement, env: Environment) -> Any:
        value = await self.evaluator.evaluate(statement.value, env)
        if isinstance(statement, BindingStatement):
            target = env.lookup(statement.target)
            if id(target) not in self._providers:
                raise UnsupportedOperationError(
                    f"{statement.target}.{statement.feature} <-",
                    "only objects created by this transformation can be assigned",
                )
            self._bindings_evaluated += 1
            await self._assign(target, statement.feature, value)
        return value

    def resolve_temp(self, source: Any, variable: str, rule_name: Optional[str] = None) -> Any:
        return self.trace.resolve(source, variable, rule_name)

    async def all_instances(self, type_name: str, alias: Optional[str] = None) -> OclCollection:
        qualifier, class_name = split_type_name(type_name)
        if alias is not None:
            if alias not in self.source_models:
                raise UnsupportedOperationError("allInstancesFrom", f"unknown source model '{alias}'")
            aliases = [alias]
        else:
            aliases = [
                a for a, metamodel in self.module.source_models
                if qualifier is None or qualifier in (a, metamodel)
            ]
        found: List[Any] = []
        for name in aliases:
            provider = self.source_models[name]
            objects = await self._provider_call(f"objects of {name}", provider.objects)
            for obj in objects:
                if class_name in await self.evaluator.type_ancestry(obj):
                    found.append(obj)
        return OclCollection.of(CollectionKind.SET, found)

    # -- Result ----------------------------------------------------------
    def statistics(self, elapsed: float = 0.0) -> ExecutionStatistics:
        return ExecutionStatistics(
            objects_created=self._objects_created,
            rules_applied=self._matched_applied + self._lazy_applied + self._called_applied,
            bindings_evaluated=self._bindings_evaluated,
            matched_rules_applied=self._matched_applied,
            lazy_rules_applied=self._lazy_applied,
            called_rules_applied=self._called_applied,
            lazy_cache_hits=self.lazy_cache.hits,
            trace_links=len(self.trace),
            deferred_bindings_resolved=self._deferred_resolved,
            helper_invocations=self.evaluator.helper_invocations,
            navigations=self.evaluator.navigations,
            elements_processed=self.schedule.examined if self.schedule is not None else 0,
            phase_times=MappingProxyType(dict(self._phase_times)),
            rule_times=MappingProxyType(dict(self._rule_times)),
            helper_times=MappingProxyType(dict(self.evaluator.helper_times)),
            elapsed_seconds=elapsed,
        )

    def _result(self, elapsed: float) -> ExecutionResult:
        assert self.schedule is not None
        stats = self.statistics(elapsed)
        logger.info(
            "%s: %d rules applied, %d objects created in %.3fs",
            self.module.name, stats.rules_applied, stats.objects_created, elapsed,
        )
        return ExecutionResult(
            target_models=MappingProxyType(dict(self.target_models)),
            statistics=stats,
            schedule=self.schedule,
            trace=self.trace,
        )


async def execute(
    module: TransformationModule,
    source_models: Mapping[str, Any],
    target_models: Mapping[str, Any],
    *,
    navigator: Any = None,
    config: Optional[EngineConfig] = None,
) -> ExecutionResult:
    """
    Run ``module`` once; raises the first error encountered.

    A failed run leaves whatever it already created in ``target_models``.
    Discard those models after an error instead of reusing them.
    """
    pipeline = ExecutionPipeline(
        module, source_models, target_models, navigator=navigator, config=config
    )
    return await pipeline.run()


__all__ = [
    "Phase",
    "ExecutionStatistics",
    "ExecutionResult",
    "ExecutionPipeline",
    "execute",
]
